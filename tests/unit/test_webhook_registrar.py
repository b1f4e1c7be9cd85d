"""
Unit tests for the MutatingWebhookConfiguration registrar.

The AdmissionregistrationV1Api is mocked; no cluster is required.
"""

import base64
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from muting.errors import RegistrationFailure
from muting.services import (
    DeclarationOptions,
    WebhookRegistrar,
    build_declaration,
    build_url,
)

CA_PEM = b"-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


@pytest.fixture
def options():
    return DeclarationOptions(
        name="muting",
        namespace="webhooks",
        service="muting-svc",
        ca_bundle=CA_PEM,
    )


def _stored(declaration, resource_version):
    """What the API server returns for a stored declaration."""
    stored = client.V1MutatingWebhookConfiguration(
        metadata=client.V1ObjectMeta(
            name=declaration.metadata.name, resource_version=resource_version
        ),
        webhooks=declaration.webhooks,
    )
    return stored


class TestBuildDeclaration:
    """Tests for ``build_declaration``."""

    def test_service_reference(self, options):
        declaration = build_declaration(options)

        assert declaration.metadata.name == "muting"
        assert declaration.metadata.labels == {"app.kubernetes.io/managed-by": "muting"}
        assert len(declaration.webhooks) == 1

        webhook = declaration.webhooks[0]
        assert webhook.name == "muting-svc.webhooks.svc.cluster.local"
        assert webhook.admission_review_versions == ["v1"]
        assert webhook.side_effects == "None"
        assert webhook.failure_policy == "Fail"

        service = webhook.client_config.service
        assert service.name == "muting-svc"
        assert service.namespace == "webhooks"
        assert service.path == "/mutate"
        assert service.port == 443
        assert webhook.client_config.url is None

    def test_ca_bundle_is_base64_of_pem(self, options):
        webhook = build_declaration(options).webhooks[0]
        assert base64.b64decode(webhook.client_config.ca_bundle) == CA_PEM

    def test_rules_target_ingresses(self, options):
        rule = build_declaration(options).webhooks[0].rules[0]
        assert rule.api_groups == ["networking.k8s.io"]
        assert rule.api_versions == ["v1"]
        assert rule.operations == ["CREATE", "UPDATE"]
        assert rule.resources == ["ingresses"]

    def test_namespace_selector(self, options):
        selector = build_declaration(options).webhooks[0].namespace_selector
        assert selector.match_labels == {"muting-svc": "enabled"}

    def test_url_replaces_service(self, options):
        url_options = DeclarationOptions(
            name=options.name,
            namespace=options.namespace,
            service=options.service,
            ca_bundle=options.ca_bundle,
            url=build_url("hooks.example.com", 8443),
            failure_policy="Ignore",
        )
        webhook = build_declaration(url_options).webhooks[0]
        assert webhook.client_config.url == "https://hooks.example.com:8443/mutate"
        assert webhook.client_config.service is None
        assert webhook.failure_policy == "Ignore"

    def test_deterministic(self, options):
        first = client.ApiClient().sanitize_for_serialization(build_declaration(options))
        second = client.ApiClient().sanitize_for_serialization(build_declaration(options))
        assert first == second


class TestBuildUrl:
    """Tests for ``build_url``."""

    def test_without_host(self):
        assert build_url("", 8443) == ""

    def test_with_port(self):
        assert build_url("hooks.example.com", 8443) == "https://hooks.example.com:8443/mutate"

    def test_without_port(self):
        assert build_url("hooks.example.com") == "https://hooks.example.com/mutate"


class TestWebhookRegistrar:
    """Tests for ``WebhookRegistrar.reconcile``."""

    def test_creates_when_absent(self, options, metrics):
        api = MagicMock()
        api.read_mutating_webhook_configuration.side_effect = ApiException(
            status=404, reason="Not Found"
        )
        declaration = build_declaration(options)
        api.create_mutating_webhook_configuration.return_value = _stored(declaration, "100")

        result = WebhookRegistrar(api, metrics).reconcile(declaration)

        assert result.action == "created"
        assert result.resource_version == "100"
        api.create_mutating_webhook_configuration.assert_called_once()
        api.replace_mutating_webhook_configuration.assert_not_called()
        assert (
            metrics.registry.get_sample_value(
                "muting_webhook_registrations_total",
                {"action": "created", "result": "success"},
            )
            == 1
        )

    def test_updates_with_existing_resource_version(self, options):
        api = MagicMock()
        declaration = build_declaration(options)
        api.read_mutating_webhook_configuration.return_value = _stored(declaration, "42")
        api.replace_mutating_webhook_configuration.return_value = _stored(declaration, "43")

        result = WebhookRegistrar(api).reconcile(declaration)

        assert result.action == "updated"
        assert result.resource_version == "43"
        call = api.replace_mutating_webhook_configuration.call_args
        assert call.kwargs["name"] == "muting"
        assert call.kwargs["body"].metadata.resource_version == "42"
        api.create_mutating_webhook_configuration.assert_not_called()

    def test_does_not_modify_caller_declaration(self, options):
        api = MagicMock()
        declaration = build_declaration(options)
        api.read_mutating_webhook_configuration.return_value = _stored(declaration, "42")

        WebhookRegistrar(api).reconcile(declaration)

        assert declaration.metadata.resource_version is None

    def test_reconcile_twice_creates_then_updates(self, options):
        """The second reconcile carries the version returned by the first."""
        declaration = build_declaration(options)
        stored: dict = {}

        def read(name):
            if name not in stored:
                raise ApiException(status=404, reason="Not Found")
            return stored[name]

        def create(body):
            stored[body.metadata.name] = _stored(body, "1")
            return stored[body.metadata.name]

        def replace(name, body):
            stored[name] = _stored(body, "2")
            return stored[name]

        api = MagicMock()
        api.read_mutating_webhook_configuration.side_effect = read
        api.create_mutating_webhook_configuration.side_effect = create
        api.replace_mutating_webhook_configuration.side_effect = replace

        registrar = WebhookRegistrar(api)
        first = registrar.reconcile(declaration)
        second = registrar.reconcile(build_declaration(options))

        assert (first.action, second.action) == ("created", "updated")
        assert api.create_mutating_webhook_configuration.call_count == 1
        assert api.replace_mutating_webhook_configuration.call_count == 1
        body = api.replace_mutating_webhook_configuration.call_args.kwargs["body"]
        assert body.metadata.resource_version == first.resource_version

    def test_lookup_error_is_registration_failure(self, options, metrics):
        api = MagicMock()
        api.read_mutating_webhook_configuration.side_effect = ApiException(
            status=500, reason="Internal Server Error"
        )

        with pytest.raises(RegistrationFailure) as exc_info:
            WebhookRegistrar(api, metrics).reconcile(build_declaration(options))

        assert exc_info.value.phase == "registration"
        assert "Internal Server Error" in str(exc_info.value)
        api.create_mutating_webhook_configuration.assert_not_called()
        assert (
            metrics.registry.get_sample_value(
                "muting_webhook_registrations_total",
                {"action": "lookup", "result": "failure"},
            )
            == 1
        )

    def test_create_error_is_registration_failure(self, options):
        api = MagicMock()
        api.read_mutating_webhook_configuration.side_effect = ApiException(status=404)
        api.create_mutating_webhook_configuration.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(RegistrationFailure, match="Unable to create"):
            WebhookRegistrar(api).reconcile(build_declaration(options))

    def test_conflict_on_replace_is_registration_failure(self, options):
        api = MagicMock()
        declaration = build_declaration(options)
        api.read_mutating_webhook_configuration.return_value = _stored(declaration, "7")
        api.replace_mutating_webhook_configuration.side_effect = ApiException(
            status=409, reason="Conflict"
        )

        with pytest.raises(RegistrationFailure, match="Unable to update"):
            WebhookRegistrar(api).reconcile(declaration)

    def test_unreachable_api_server_is_registration_failure(self, options, metrics):
        api = MagicMock()
        api.read_mutating_webhook_configuration.side_effect = MaxRetryError(
            None,
            "/apis/admissionregistration.k8s.io/v1/mutatingwebhookconfigurations/muting",
            reason=ConnectionRefusedError(111, "Connection refused"),
        )

        with pytest.raises(RegistrationFailure) as exc_info:
            WebhookRegistrar(api, metrics).reconcile(build_declaration(options))

        assert exc_info.value.phase == "registration"
        assert isinstance(exc_info.value.cause, MaxRetryError)
        assert "Max retries exceeded" in str(exc_info.value)
        api.create_mutating_webhook_configuration.assert_not_called()
        assert (
            metrics.registry.get_sample_value(
                "muting_webhook_registrations_total",
                {"action": "lookup", "result": "failure"},
            )
            == 1
        )

    def test_connection_reset_on_replace_is_registration_failure(self, options):
        api = MagicMock()
        declaration = build_declaration(options)
        api.read_mutating_webhook_configuration.return_value = _stored(declaration, "7")
        api.replace_mutating_webhook_configuration.side_effect = ConnectionResetError(
            104, "Connection reset by peer"
        )

        with pytest.raises(RegistrationFailure, match="Unable to update.*reset by peer"):
            WebhookRegistrar(api).reconcile(declaration)
