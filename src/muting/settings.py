"""Centralized webhook settings using pydantic-settings.

This module provides a single source of truth for all webhook configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from muting.constants import (
    DEFAULT_DRAIN_TIMEOUT,
    DEFAULT_TRANSFORMS_KEY,
)
from muting.errors import ConfigurationError


class Settings(BaseSettings):
    """Webhook configuration loaded from environment variables.

    All settings have sensible defaults for an in-cluster deployment named
    ``muting`` in the ``default`` namespace. Override via environment
    variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Listener
    bind_address: str = Field(
        default=":8443",
        description="Address to bind the HTTPS listener to (host:port)",
        validation_alias="MUTING_BIND",
    )

    # Resource identification
    name: str = Field(
        default="muting",
        description="Name of the webhook configuration and rules ConfigMap",
        validation_alias="MUTING_NAME",
    )
    namespace: str = Field(
        default="default",
        description="Namespace the webhook service runs in",
        validation_alias="MUTING_NAMESPACE",
    )
    service: str = Field(
        default="muting",
        description="Name of the Service fronting the webhook",
        validation_alias="MUTING_SERVICE",
    )
    host: str = Field(
        default="",
        description="Externally reachable host name (overrides service-derived names)",
        validation_alias="MUTING_HOST",
    )

    # Transform rules
    transforms_file: str = Field(
        default="",
        description="Path to a YAML transforms file (empty = use a ConfigMap)",
        validation_alias="MUTING_TRANSFORMS_FILE",
    )
    transforms_configmap: str = Field(
        default="",
        description="ConfigMap holding the transforms (empty = same as name)",
        validation_alias="MUTING_TRANSFORMS_CONFIGMAP",
    )
    transforms_configmap_key: str = Field(
        default=DEFAULT_TRANSFORMS_KEY,
        description="Key within the ConfigMap data containing the transforms YAML",
        validation_alias="MUTING_TRANSFORMS_CONFIGMAP_KEY",
    )

    # Admission behavior
    failure_policy: Literal["Fail", "Ignore"] = Field(
        default="Fail",
        description="Failure policy declared to the API server when unreachable",
        validation_alias="MUTING_FAILURE_POLICY",
    )
    transform_failure_policy: Literal["ignore", "reject"] = Field(
        default="ignore",
        description="Whether a transform failure admits unchanged or rejects",
        validation_alias="TRANSFORM_FAILURE_POLICY",
    )
    drain_timeout_seconds: float = Field(
        default=DEFAULT_DRAIN_TIMEOUT,
        description="Maximum seconds to wait for in-flight requests on shutdown",
        validation_alias="DRAIN_TIMEOUT_SECONDS",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log heartbeat and metrics requests",
    )

    # Tracing
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="OTEL_TRACING_ENABLED",
        description="Enable OpenTelemetry tracing",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP collector endpoint (gRPC)",
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        validation_alias="OTEL_TRACING_SAMPLE_RATE",
        description="Sampling rate for root spans (0.0-1.0)",
    )

    @property
    def bind_host(self) -> str | None:
        """Host part of the bind address; None means all interfaces."""
        host, _, _ = self.bind_address.rpartition(":")
        return host or None

    @property
    def bind_port(self) -> int:
        """Port part of the bind address.

        Raises:
            ConfigurationError: If the port is missing or not numeric
        """
        _, sep, port = self.bind_address.rpartition(":")
        if not sep or not port.isdigit():
            raise ConfigurationError(
                f"Bind address '{self.bind_address}' must be of the form host:port"
            )
        return int(port)

    @property
    def uses_configmap_rules(self) -> bool:
        """Whether transform rules come from a live ConfigMap."""
        return not self.transforms_file

    @property
    def rules_configmap_name(self) -> str:
        return self.transforms_configmap or self.name

    def validate_for_startup(self) -> None:
        """Check cross-field requirements before any startup phase runs.

        Raises:
            ConfigurationError: If a required identifier is empty
        """
        self.bind_port  # noqa: B018
        if self.uses_configmap_rules:
            missing = [
                field
                for field in ("name", "namespace", "service")
                if not getattr(self, field).strip()
            ]
            if missing:
                raise ConfigurationError(
                    f"Settings {', '.join(missing)} must be non-empty when "
                    "transforms are read from a ConfigMap",
                    user_action="Set MUTING_NAME, MUTING_NAMESPACE and MUTING_SERVICE",
                )
