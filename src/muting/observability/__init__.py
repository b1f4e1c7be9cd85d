"""
Observability utilities for the muting webhook.

This module provides metrics, tracing and structured logging
capabilities for production monitoring and troubleshooting.
"""

from .logging import WebhookLogger, setup_structured_logging
from .metrics import MetricsCollector
from .tracing import get_tracer, setup_tracing, shutdown_tracing, traced

__all__ = [
    "MetricsCollector",
    "WebhookLogger",
    "get_tracer",
    "setup_structured_logging",
    "setup_tracing",
    "shutdown_tracing",
    "traced",
]
