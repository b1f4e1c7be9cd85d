"""
Prometheus metrics for the muting webhook.

Metrics live on a registry owned by a ``MetricsCollector`` instance that is
created at startup and handed to the components that record into it, so
tests can build isolated collectors without touching process-wide state.
"""

import logging
import time
from contextlib import contextmanager

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

logger = logging.getLogger(__name__)

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


class MetricsCollector:
    """Collects and exposes metrics for the muting webhook."""

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        include_process_metrics: bool = True,
    ):
        """
        Initialize metrics collector.

        Args:
            registry: Registry to register metrics in (a new one if omitted)
            include_process_metrics: Also export process and platform metrics
        """
        self.registry = registry or CollectorRegistry()

        if include_process_metrics:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)

        self.admission_requests = Counter(
            "muting_admission_requests_total",
            "Total number of admission reviews handled",
            ["kind", "operation", "result"],
            registry=self.registry,
        )
        self.admission_duration = Histogram(
            "muting_admission_duration_seconds",
            "Time spent deciding admission reviews",
            ["kind"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry,
        )
        self.in_flight = Gauge(
            "muting_admission_in_flight",
            "Admission reviews currently being handled",
            registry=self.registry,
        )
        self.transforms = Counter(
            "muting_transforms_total",
            "Total number of values passed through the transform engine",
            ["result"],
            registry=self.registry,
        )
        self.transform_degraded = Counter(
            "muting_transform_degraded_total",
            "Values left unchanged because transform rules were unavailable",
            ["error_type"],
            registry=self.registry,
        )
        self.registrations = Counter(
            "muting_webhook_registrations_total",
            "Webhook configuration reconcile attempts",
            ["action", "result"],
            registry=self.registry,
        )

    @contextmanager
    def track_admission(self, kind: str):
        """
        Context manager tracking in-flight count and duration of a review.

        Args:
            kind: Kind of the object under review
        """
        start_time = time.time()
        self.in_flight.inc()
        try:
            yield
        finally:
            self.in_flight.dec()
            self.admission_duration.labels(kind=kind).observe(time.time() - start_time)

    def record_admission(self, kind: str, operation: str, result: str) -> None:
        """
        Record an admission decision.

        Args:
            kind: Kind of the object
            operation: CREATE, UPDATE, ...
            result: mutated, unchanged, skipped or rejected
        """
        self.admission_requests.labels(
            kind=kind or "unknown", operation=operation or "unknown", result=result
        ).inc()

    def record_transform(self, changed: bool) -> None:
        self.transforms.labels(result="changed" if changed else "unchanged").inc()

    def record_transform_degraded(self, error_type: str) -> None:
        self.transform_degraded.labels(error_type=error_type).inc()

    def record_registration(self, action: str, success: bool) -> None:
        """
        Record a webhook configuration reconcile attempt.

        Args:
            action: lookup, created or updated
            success: Whether the cluster accepted the call
        """
        self.registrations.labels(
            action=action, result="success" if success else "failure"
        ).inc()

    def render(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)
