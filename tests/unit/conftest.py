"""Shared pytest fixtures for muting unit tests."""

import pytest

from muting.models.transform import TransformRule, TransformRules
from muting.observability.metrics import MetricsCollector
from muting.pki import IdentityProfile, issue_tls


class StaticRuleSource:
    """Rule source that serves fixed rules, or raises a fixed error."""

    def __init__(self, rules: TransformRules | None = None, error: Exception | None = None):
        self.rules = rules or TransformRules()
        self.error = error
        self.reads = 0

    async def read(self) -> TransformRules:
        self.reads += 1
        if self.error is not None:
            raise self.error
        return self.rules

    def describe(self) -> str:
        return "static rules"


@pytest.fixture(scope="session")
def tls_bundle():
    """Root and leaf issued once per session (4096-bit root generation is slow)."""
    return issue_tls(IdentityProfile.for_service("muting", "default"))


@pytest.fixture
def metrics():
    """Isolated metrics collector without process collectors."""
    return MetricsCollector(include_process_metrics=False)


@pytest.fixture
def example_rules():
    return TransformRules(
        transforms=[
            TransformRule(from_=["example.com", "example.org"], to="example.net"),
            TransformRule(from_=["corp.internal"], to="corp.example.net"),
        ]
    )


def _ingress_object(*hosts, name: str = "web", namespace: str = "apps") -> dict:
    """Build a raw networking.k8s.io/v1 Ingress with one rule per host."""
    rules = []
    for host in hosts:
        rule = {
            "http": {
                "paths": [
                    {
                        "path": "/",
                        "pathType": "Prefix",
                        "backend": {"service": {"name": name, "port": {"number": 80}}},
                    }
                ]
            }
        }
        if host is not None:
            rule["host"] = host
        rules.append(rule)
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"ingressClassName": "nginx", "rules": rules},
    }


def _admission_review(
    obj: dict | None,
    uid: str = "0df28fbd-5f5f-11e8-bc74-36e6bb280816",
    operation: str = "CREATE",
) -> dict:
    """Wrap ``obj`` in an admission.k8s.io/v1 AdmissionReview request."""
    kind = (obj or {}).get("kind", "")
    kind = kind if isinstance(kind, str) else ""
    api_version = (obj or {}).get("apiVersion", "")
    group, _, version = api_version.rpartition("/")
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {
            "uid": uid,
            "kind": {"group": group, "version": version, "kind": kind},
            "resource": {"group": group, "version": version, "resource": "ingresses"},
            "name": (obj or {}).get("metadata", {}).get("name", ""),
            "namespace": (obj or {}).get("metadata", {}).get("namespace", ""),
            "operation": operation,
            "userInfo": {"username": "admin"},
            "object": obj,
            "oldObject": None,
            "dryRun": False,
        },
    }


@pytest.fixture
def make_ingress():
    """Factory for raw Ingress objects."""
    return _ingress_object


@pytest.fixture
def make_review():
    """Factory for AdmissionReview request bodies."""
    return _admission_review


@pytest.fixture
def static_source():
    """Factory for in-memory rule sources."""
    return StaticRuleSource
