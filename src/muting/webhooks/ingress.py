"""
Mutating admission handler for networking.k8s.io/v1 Ingress resources.

Each rule host is passed through the suffix transform engine and every
rewritten host becomes a JSON Patch operation against the object exactly as
the API server sent it. Objects of any other kind are admitted untouched.
"""

import copy
import logging
import time
from typing import Any

import jsonpatch

from muting.constants import TRANSFORM_POLICY_IGNORE, TRANSFORM_POLICY_REJECT
from muting.errors import TransformDegraded, TransformError
from muting.models.admission import (
    AdmissionRequest,
    AdmissionResponse,
    Ingress,
    MalformedObject,
    UnsupportedObject,
    decode_object,
)
from muting.models.transform import TransformRules
from muting.observability.logging import WebhookLogger
from muting.observability.metrics import MetricsCollector
from muting.observability.tracing import get_tracer
from muting.transform import engine
from muting.transform.sources import RuleSource

logger = logging.getLogger(__name__)


def rewrite_hosts(raw: dict[str, Any], rules: TransformRules) -> dict[str, Any]:
    """
    Return a copy of ``raw`` with every rule host rewritten.

    Only ``spec.rules[*].host`` is touched; empty or absent hosts are left
    alone.
    """
    mutated = copy.deepcopy(raw)
    for rule in (mutated.get("spec") or {}).get("rules") or []:
        if not isinstance(rule, dict):
            continue
        host = rule.get("host")
        if isinstance(host, str) and host:
            rule["host"] = engine.apply(rules, host)
    return mutated


class IngressMutator:
    """Decides admission for a single AdmissionRequest."""

    def __init__(
        self,
        source: RuleSource,
        metrics: MetricsCollector | None = None,
        failure_policy: str = TRANSFORM_POLICY_IGNORE,
    ):
        """
        Initialize mutator.

        Args:
            source: Where the transform rules are read from
            metrics: Collector to record decisions into
            failure_policy: ``ignore`` admits unchanged when rules are
                unavailable, ``reject`` denies the request
        """
        if failure_policy not in (TRANSFORM_POLICY_IGNORE, TRANSFORM_POLICY_REJECT):
            raise ValueError(f"Unknown transform failure policy: {failure_policy}")
        self.source = source
        self.metrics = metrics
        self.failure_policy = failure_policy
        self.logger = WebhookLogger(self.__class__.__name__)
        self.tracer = get_tracer(__name__)

    async def mutate(self, request: AdmissionRequest) -> AdmissionResponse:
        """
        Compute the admission response for ``request``.

        The response always carries the request uid. Unsupported kinds are
        admitted without a patch.
        """
        start_time = time.time()
        decoded = decode_object(request.object)

        with self.tracer.start_as_current_span("admission.mutate") as span:
            span.set_attribute("admission.uid", request.uid)
            span.set_attribute("admission.operation", request.operation)

            match decoded:
                case Ingress():
                    kind = decoded.kind
                    response, result = await self._mutate_ingress(request, decoded)
                case MalformedObject():
                    kind = decoded.kind
                    self.logger.warning(
                        f"Admitting malformed {kind} {request.namespace}/{request.name} "
                        f"unchanged: {decoded.error}",
                        resource_kind=kind,
                        resource_name=request.name,
                        namespace=request.namespace,
                    )
                    response = AdmissionResponse.accept(request.uid)
                    response.warnings = [f"muting skipped malformed {kind}"]
                    result = "skipped"
                case UnsupportedObject():
                    kind = str(decoded.kind or "unknown")
                    response = AdmissionResponse.accept(request.uid)
                    result = "skipped"

            span.set_attribute("admission.result", result)

        if self.metrics is not None:
            self.metrics.record_admission(kind, request.operation, result)

        self.logger.log_admission(
            kind=kind,
            name=request.name,
            namespace=request.namespace,
            operation=request.operation,
            allowed=response.allowed,
            patch_ops=len(response.decoded_patch()),
            duration=time.time() - start_time,
        )
        return response

    async def _mutate_ingress(
        self, request: AdmissionRequest, ingress: Ingress
    ) -> tuple[AdmissionResponse, str]:
        raw = request.object or {}

        # One snapshot for the whole object
        try:
            rules = await self.source.read()
        except TransformError as e:
            return self._degrade(request, ingress, e)

        mutated = rewrite_hosts(raw, rules)
        operations = jsonpatch.make_patch(raw, mutated).patch

        if self.metrics is not None:
            for original in ingress.spec.rules:
                if original.host:
                    self.metrics.record_transform(
                        engine.apply(rules, original.host) != original.host
                    )

        if not operations:
            return AdmissionResponse.accept(request.uid), "unchanged"

        for op in operations:
            logger.debug(f"Ingress {request.namespace}/{ingress.name}: {op}")
        return AdmissionResponse.accept_with_patch(request.uid, operations), "mutated"

    def _degrade(
        self, request: AdmissionRequest, ingress: Ingress, error: TransformError
    ) -> tuple[AdmissionResponse, str]:
        if self.failure_policy == TRANSFORM_POLICY_REJECT:
            self.logger.error(
                f"Rejecting Ingress {request.namespace}/{ingress.name}: {error.args[0]}",
                error_type=type(error).__name__,
            )
            return (
                AdmissionResponse.deny(
                    request.uid, f"transform rules unavailable: {error.args[0]}"
                ),
                "rejected",
            )

        for rule in ingress.spec.rules:
            if not rule.host:
                continue
            degraded = TransformDegraded(rule.host, error)
            self.logger.warning(
                degraded.args[0],
                error_type=type(error).__name__,
                host=rule.host,
            )
            if self.metrics is not None:
                self.metrics.record_transform_degraded(type(error).__name__)
        return AdmissionResponse.accept(request.uid), "unchanged"
