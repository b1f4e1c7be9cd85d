"""
Registration of the MutatingWebhookConfiguration.

The declaration is computed from configuration on every start and applied
once: created when absent, replaced in place when present. A replace must
carry the resourceVersion currently held by the cluster or the API server
rejects it as a conflicting write.
"""

import base64
import copy
from dataclasses import dataclass
from typing import Literal

from kubernetes import client
from kubernetes.client.rest import ApiException

from muting.constants import (
    ADMISSION_REVIEW_VERSIONS,
    MANAGED_BY_LABEL_KEY,
    MANAGED_BY_LABEL_VALUE,
    MUTATE_PATH,
    NAMESPACE_SELECTOR_VALUE,
    SERVICE_PORT,
    SIDE_EFFECTS_NONE,
    TARGET_API_GROUP,
    TARGET_API_VERSION,
    TARGET_OPERATIONS,
    TARGET_RESOURCE,
)
from muting.errors import RegistrationFailure
from muting.observability.logging import WebhookLogger
from muting.observability.metrics import MetricsCollector
from muting.observability.tracing import traced
from muting.utils.kubernetes import TRANSPORT_ERRORS


@dataclass(frozen=True)
class DeclarationOptions:
    """Inputs the webhook declaration is derived from."""

    name: str
    namespace: str
    service: str
    ca_bundle: bytes
    url: str = ""
    failure_policy: str = "Fail"

    @property
    def webhook_name(self) -> str:
        return f"{self.service}.{self.namespace}.svc.cluster.local"

    def __str__(self) -> str:
        return "\n".join(
            [
                f"Namespace: {self.namespace}",
                f"Name: {self.name}",
                f"Service: {self.service}",
            ]
        )


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a reconcile call."""

    name: str
    action: Literal["created", "updated"]
    resource_version: str | None


def build_url(host: str, bind_port: int | None = None) -> str:
    """
    Build the callback URL for an externally reachable host.

    Args:
        host: External host name; empty means the in-cluster Service is used
        bind_port: Port the server listens on, appended when given

    Returns:
        ``https://host[:port]/mutate`` or an empty string without a host
    """
    if not host:
        return ""
    netloc = f"{host}:{bind_port}" if bind_port else host
    return f"https://{netloc}{MUTATE_PATH}"


def build_declaration(
    options: DeclarationOptions,
) -> client.V1MutatingWebhookConfiguration:
    """
    Compute the webhook declaration from configuration.

    The result depends only on ``options``, so repeated calls produce
    identical payloads.

    Args:
        options: Declaration inputs

    Returns:
        MutatingWebhookConfiguration ready to create or replace
    """
    if options.url:
        client_config = client.AdmissionregistrationV1WebhookClientConfig(
            ca_bundle=base64.b64encode(options.ca_bundle).decode(),
            url=options.url,
        )
    else:
        client_config = client.AdmissionregistrationV1WebhookClientConfig(
            ca_bundle=base64.b64encode(options.ca_bundle).decode(),
            service=client.AdmissionregistrationV1ServiceReference(
                name=options.service,
                namespace=options.namespace,
                path=MUTATE_PATH,
                port=SERVICE_PORT,
            ),
        )

    rule = client.V1RuleWithOperations(
        api_groups=[TARGET_API_GROUP],
        api_versions=[TARGET_API_VERSION],
        operations=list(TARGET_OPERATIONS),
        resources=[TARGET_RESOURCE],
    )

    webhook = client.V1MutatingWebhook(
        name=options.webhook_name,
        admission_review_versions=list(ADMISSION_REVIEW_VERSIONS),
        side_effects=SIDE_EFFECTS_NONE,
        failure_policy=options.failure_policy,
        client_config=client_config,
        rules=[rule],
        namespace_selector=client.V1LabelSelector(
            match_labels={options.service: NAMESPACE_SELECTOR_VALUE}
        ),
    )

    return client.V1MutatingWebhookConfiguration(
        api_version="admissionregistration.k8s.io/v1",
        kind="MutatingWebhookConfiguration",
        metadata=client.V1ObjectMeta(
            name=options.name,
            labels={MANAGED_BY_LABEL_KEY: MANAGED_BY_LABEL_VALUE},
        ),
        webhooks=[webhook],
    )


class WebhookRegistrar:
    """Creates or updates the webhook declaration in the cluster."""

    def __init__(
        self,
        admission_api: client.AdmissionregistrationV1Api,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize registrar.

        Args:
            admission_api: Client for admissionregistration.k8s.io/v1
            metrics: Collector to record reconcile attempts into
        """
        self.admission_api = admission_api
        self.metrics = metrics
        self.logger = WebhookLogger(self.__class__.__name__)

    def _record(self, action: str, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_registration(action, success)

    @traced("reconcile_webhook")
    def reconcile(
        self, declaration: client.V1MutatingWebhookConfiguration
    ) -> ReconcileResult:
        """
        Apply the declaration to the cluster.

        Args:
            declaration: Desired MutatingWebhookConfiguration

        Returns:
            Which action was taken and the resulting resource version

        Raises:
            RegistrationFailure: On any API error other than a not-found lookup,
                or when the API server cannot be reached
        """
        name = declaration.metadata.name
        payload = copy.deepcopy(declaration)

        try:
            existing = self.admission_api.read_mutating_webhook_configuration(name=name)
        except ApiException as e:
            if e.status != 404:
                self._record("lookup", False)
                raise RegistrationFailure(
                    f"Unable to get admission config {name}", reason=e.reason, cause=e
                ) from e
            existing = None
        except TRANSPORT_ERRORS as e:
            self._record("lookup", False)
            raise RegistrationFailure(
                f"Unable to get admission config {name}", reason=_reason(e), cause=e
            ) from e

        if existing is None:
            try:
                created = self.admission_api.create_mutating_webhook_configuration(
                    body=payload
                )
            except (ApiException, *TRANSPORT_ERRORS) as e:
                self._record("created", False)
                raise RegistrationFailure(
                    f"Unable to create admission config {name}", reason=_reason(e), cause=e
                ) from e

            self._record("created", True)
            self.logger.info(f"Created MutatingWebhookConfiguration {name}")
            return ReconcileResult(
                name=name,
                action="created",
                resource_version=_resource_version(created),
            )

        payload.metadata.resource_version = existing.metadata.resource_version
        try:
            updated = self.admission_api.replace_mutating_webhook_configuration(
                name=name, body=payload
            )
        except (ApiException, *TRANSPORT_ERRORS) as e:
            self._record("updated", False)
            raise RegistrationFailure(
                f"Unable to update admission config {name}", reason=_reason(e), cause=e
            ) from e

        self._record("updated", True)
        self.logger.info(
            f"Updated MutatingWebhookConfiguration {name} "
            f"(from resourceVersion {existing.metadata.resource_version})"
        )
        return ReconcileResult(
            name=name,
            action="updated",
            resource_version=_resource_version(updated),
        )


def _resource_version(obj: client.V1MutatingWebhookConfiguration | None) -> str | None:
    metadata = getattr(obj, "metadata", None)
    return getattr(metadata, "resource_version", None)


def _reason(error: Exception) -> str:
    if isinstance(error, ApiException):
        return error.reason
    return str(error)
