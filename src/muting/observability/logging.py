"""
Structured logging utilities for the muting webhook.

This module provides correlation ID tracking, structured log formatting,
and admission decision logging for production troubleshooting.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

from muting.constants import HEARTBEAT_PATH, METRICS_PATH

# Context variable for tracking correlation IDs across async operations
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Paths that should be filtered from access logs (probes and scrapes)
HEALTH_PROBE_PATHS = frozenset({HEARTBEAT_PATH, METRICS_PATH})

STRUCTURED_FIELDS = (
    "resource_kind",
    "resource_name",
    "namespace",
    "operation",
    "phase",
    "duration",
    "error_type",
    "host",
    "patch_ops",
    "allowed",
    "dry_run",
)


class HealthProbeFilter(logging.Filter):
    """
    Logging filter that suppresses heartbeat and metrics endpoint logs.

    These endpoints are hit frequently by Kubernetes probes and Prometheus,
    generating excessive noise in logs during debugging.
    """

    def __init__(self, suppress_health_logs: bool = True):
        super().__init__()
        self.suppress_health_logs = suppress_health_logs

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.suppress_health_logs:
            return True

        message = record.getMessage()
        return all(path not in message for path in HEALTH_PROBE_PATHS)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for logs with correlation ID support.

    Formats log records as structured JSON for better parsing and analysis
    in production monitoring systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields arrive as attributes on the record
        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def generate_correlation_id() -> str:
    """Generate a short 8-character correlation ID."""
    return str(uuid.uuid4())[:8]


def set_correlation_id(corr_id: str) -> str:
    """
    Set the correlation ID for the current context.

    Args:
        corr_id: Correlation ID to set

    Returns:
        The correlation ID that was set
    """
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    return correlation_id.get("")


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Set up structured logging for the webhook.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Whether to use JSON formatting
        correlation_id_enabled: Whether to enable correlation ID tracking
        log_health_probes: Whether to log heartbeat and metrics requests
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()

    if enable_json_formatting:
        formatter: logging.Formatter = StructuredFormatter()
    elif correlation_id_enabled:
        formatter = logging.Formatter(
            "%(asctime)s - %(correlation_id)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)

    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    if not log_health_probes:
        handler.addFilter(HealthProbeFilter(suppress_health_logs=True))

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Set specific logger levels for third-party libraries
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    # aiohttp logs every probe and scrape at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.server").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.web").setLevel(logging.WARNING)


class WebhookLogger:
    """
    Logger for webhook lifecycle and admission events with structured fields.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_phase_start(self, phase: str) -> None:
        self.logger.info(
            f"Starting phase {phase}", extra={"phase": phase, "operation": "phase_start"}
        )

    def log_phase_success(self, phase: str, duration: float) -> None:
        self.logger.info(
            f"Phase {phase} completed in {duration:.3f}s",
            extra={"phase": phase, "operation": "phase_success", "duration": duration},
        )

    def log_admission(
        self,
        kind: str,
        name: str,
        namespace: str,
        operation: str,
        allowed: bool,
        patch_ops: int,
        duration: float,
    ) -> None:
        """
        Log an admission decision.

        Args:
            kind: Kind of the admitted object
            name: Name of the object
            namespace: Namespace of the object
            operation: CREATE, UPDATE, ...
            allowed: Whether the object was admitted
            patch_ops: Number of JSON Patch operations returned
            duration: Time spent deciding, in seconds
        """
        level = logging.INFO if allowed else logging.WARNING
        verdict = "admitted" if allowed else "rejected"
        self.logger.log(
            level,
            f"{operation} {kind} {namespace}/{name} {verdict} with {patch_ops} patch operation(s)",
            extra={
                "resource_kind": kind,
                "resource_name": name,
                "namespace": namespace,
                "operation": operation,
                "allowed": allowed,
                "patch_ops": patch_ops,
                "duration": duration,
            },
        )

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        self.logger.error(message, exc_info=exc_info, extra=kwargs)
