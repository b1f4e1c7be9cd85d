"""
AdmissionReview wire models.

These mirror the ``admission.k8s.io/v1`` AdmissionReview schema. The embedded
object is kept as raw JSON on the request so that patches can be computed
against exactly what the API server sent, and is decoded separately into a
tagged union of the object kinds the webhook understands.
"""

import base64
import json
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)

from muting.constants import (
    ADMISSION_API_VERSION,
    ADMISSION_KIND,
    PATCH_TYPE_JSON,
    TARGET_API_GROUP,
    TARGET_API_VERSION,
    TARGET_KIND,
)


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str = ""


class GroupVersionResource(BaseModel):
    group: str = ""
    version: str = ""
    resource: str = ""


class AdmissionStatus(BaseModel):
    """Subset of metav1.Status returned with denied responses."""

    code: int | None = None
    message: str | None = None


class AdmissionRequest(BaseModel):
    """The request half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uid: str = Field(..., description="Identifier echoed back in the response")
    kind: GroupVersionKind | None = None
    resource: GroupVersionResource | None = None
    sub_resource: str | None = Field(None, alias="subResource")
    name: str = ""
    namespace: str = ""
    operation: str = ""
    user_info: dict[str, Any] | None = Field(None, alias="userInfo")
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = Field(None, alias="oldObject")
    dry_run: bool | None = Field(None, alias="dryRun")


class AdmissionResponse(BaseModel):
    """The response half of an AdmissionReview."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    allowed: bool = True
    patch: str | None = None
    patch_type: str | None = Field(None, alias="patchType")
    status: AdmissionStatus | None = None
    warnings: list[str] | None = None

    @classmethod
    def accept(cls, uid: str) -> "AdmissionResponse":
        return cls(uid=uid, allowed=True)

    @classmethod
    def accept_with_patch(
        cls, uid: str, operations: list[dict[str, Any]]
    ) -> "AdmissionResponse":
        """Accept and attach a base64 encoded JSON Patch; no patch if empty."""
        if not operations:
            return cls.accept(uid)
        encoded = base64.b64encode(json.dumps(operations).encode()).decode()
        return cls(uid=uid, allowed=True, patch=encoded, patch_type=PATCH_TYPE_JSON)

    @classmethod
    def deny(cls, uid: str, message: str, code: int = 500) -> "AdmissionResponse":
        return cls(
            uid=uid,
            allowed=False,
            status=AdmissionStatus(code=code, message=message),
        )

    def decoded_patch(self) -> list[dict[str, Any]]:
        """JSON Patch operations carried by this response."""
        if not self.patch:
            return []
        return json.loads(base64.b64decode(self.patch))


class AdmissionReview(BaseModel):
    """AdmissionReview envelope exchanged with the API server."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_KIND
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# Decoded object variants


class IngressRule(BaseModel):
    model_config = ConfigDict(extra="allow")

    host: str | None = None


class IngressSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    rules: list[IngressRule] = Field(default_factory=list)


class Ingress(BaseModel):
    """networking.k8s.io/v1 Ingress, reduced to the fields that get rewritten."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(..., alias="apiVersion")
    kind: Literal["Ingress"]
    metadata: dict[str, Any] = Field(default_factory=dict)
    spec: IngressSpec = Field(default_factory=IngressSpec)

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")


class UnsupportedObject(BaseModel):
    """Any object that is not the intercepted kind."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: Any = Field(None, alias="apiVersion")
    kind: Any = None


class MalformedObject(BaseModel):
    """The intercepted kind, but not decodable into its model."""

    kind: str = TARGET_KIND
    error: str


def object_variant(value: Any) -> str:
    """Discriminate on apiVersion and kind."""
    if isinstance(value, dict):
        api_version = value.get("apiVersion")
        kind = value.get("kind")
    else:
        api_version = getattr(value, "api_version", None)
        kind = getattr(value, "kind", None)

    if kind == TARGET_KIND and api_version == f"{TARGET_API_GROUP}/{TARGET_API_VERSION}":
        return "ingress"
    return "unsupported"


AdmittedObject = Annotated[
    Union[
        Annotated[Ingress, Tag("ingress")],
        Annotated[UnsupportedObject, Tag("unsupported")],
    ],
    Discriminator(object_variant),
]

_admitted_object_adapter: TypeAdapter[Ingress | UnsupportedObject] = TypeAdapter(
    AdmittedObject
)


def decode_object(raw: dict[str, Any] | None) -> Ingress | UnsupportedObject | MalformedObject:
    """
    Decode the raw request object into its variant.

    Args:
        raw: ``request.object`` as sent by the API server

    Returns:
        ``Ingress`` for the intercepted kind, ``UnsupportedObject`` for
        anything else, and ``MalformedObject`` when an Ingress does not
        match its schema
    """
    if raw is None:
        return UnsupportedObject()
    try:
        return _admitted_object_adapter.validate_python(raw)
    except ValidationError as e:
        return MalformedObject(error=str(e))
