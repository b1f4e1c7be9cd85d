"""
Unit tests for the AdmissionReview wire models and object decoding.
"""

import base64
import json

import pytest
from pydantic import ValidationError

from muting.models.admission import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    Ingress,
    MalformedObject,
    UnsupportedObject,
    decode_object,
)


class TestAdmissionReview:
    """Tests for envelope decoding and encoding."""

    def test_decodes_request(self, make_ingress, make_review):
        review = AdmissionReview.model_validate(
            make_review(make_ingress("a.example.com"), uid="u-1", operation="UPDATE")
        )

        assert review.api_version == "admission.k8s.io/v1"
        assert review.request.uid == "u-1"
        assert review.request.operation == "UPDATE"
        assert review.request.kind.kind == "Ingress"
        assert review.request.kind.group == "networking.k8s.io"
        assert review.request.user_info == {"username": "admin"}
        assert review.request.dry_run is False
        assert review.request.object["spec"]["rules"][0]["host"] == "a.example.com"

    def test_request_requires_uid(self):
        with pytest.raises(ValidationError):
            AdmissionRequest.model_validate({"operation": "CREATE"})

    def test_unknown_request_fields_kept(self):
        request = AdmissionRequest.model_validate(
            {"uid": "u", "requestKind": {"kind": "Ingress"}, "options": {}}
        )
        assert request.uid == "u"

    def test_to_wire_uses_aliases_and_drops_none(self):
        review = AdmissionReview(response=AdmissionResponse.accept("u-2"))
        assert review.to_wire() == {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "response": {"uid": "u-2", "allowed": True},
        }


class TestAdmissionResponse:
    """Tests for response constructors."""

    def test_accept_with_patch_encodes_base64_json(self):
        ops = [{"op": "replace", "path": "/spec/rules/0/host", "value": "b.example.net"}]
        response = AdmissionResponse.accept_with_patch("u", ops)

        assert response.allowed is True
        assert response.patch_type == "JSONPatch"
        assert json.loads(base64.b64decode(response.patch)) == ops
        assert response.decoded_patch() == ops
        assert response.model_dump(by_alias=True)["patchType"] == "JSONPatch"

    def test_accept_with_empty_patch_has_no_patch(self):
        response = AdmissionResponse.accept_with_patch("u", [])
        assert response.patch is None
        assert response.patch_type is None
        assert response.decoded_patch() == []

    def test_deny(self):
        response = AdmissionResponse.deny("u", "no rules", code=500)
        assert response.allowed is False
        assert response.status.code == 500
        assert response.status.message == "no rules"


class TestDecodeObject:
    """Tests for the tagged object union."""

    def test_ingress(self, make_ingress):
        obj = decode_object(make_ingress("a.example.com", None))

        assert isinstance(obj, Ingress)
        assert obj.name == "web"
        assert [rule.host for rule in obj.spec.rules] == ["a.example.com", None]

    def test_ingress_without_spec(self):
        obj = decode_object({"apiVersion": "networking.k8s.io/v1", "kind": "Ingress"})
        assert isinstance(obj, Ingress)
        assert obj.spec.rules == []

    @pytest.mark.parametrize(
        "raw",
        [
            {"apiVersion": "v1", "kind": "Service"},
            {"apiVersion": "networking.k8s.io/v1beta1", "kind": "Ingress"},
            {"apiVersion": "networking.k8s.io/v1", "kind": "IngressClass"},
            {"kind": ["not", "a", "string"]},
            {},
        ],
    )
    def test_unsupported(self, raw):
        assert isinstance(decode_object(raw), UnsupportedObject)

    def test_absent_object(self):
        assert isinstance(decode_object(None), UnsupportedObject)

    def test_malformed_ingress(self):
        obj = decode_object(
            {
                "apiVersion": "networking.k8s.io/v1",
                "kind": "Ingress",
                "spec": {"rules": "not-a-list"},
            }
        )
        assert isinstance(obj, MalformedObject)
        assert obj.kind == "Ingress"
        assert "rules" in obj.error
