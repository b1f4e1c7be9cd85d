#!/usr/bin/env python3
"""
Muting - entry point for the Ingress host rewriting admission webhook.

Startup runs strictly in order, each phase feeding the next:
    1. settings, logging and tracing
    2. root CA and leaf identity
    3. Kubernetes client and transform rule source
    4. MutatingWebhookConfiguration reconcile
    5. HTTPS admission server, until SIGTERM or SIGINT

Usage:
    muting
    # Or as a module:
    python -m muting.app

Environment Variables:
    MUTING_NAME: Name of the MutatingWebhookConfiguration
    MUTING_NAMESPACE / MUTING_SERVICE: Service fronting this process
    MUTING_HOST: Externally reachable host (replaces the Service reference)
    MUTING_TRANSFORMS_FILE: Static rules file (otherwise a ConfigMap is used)
"""

import asyncio
import signal
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import NoReturn

from kubernetes import client
from pydantic import ValidationError

from muting.errors import ConfigurationError, MutingError
from muting.observability.logging import WebhookLogger, setup_structured_logging
from muting.observability.metrics import MetricsCollector
from muting.observability.tracing import get_tracer, setup_tracing, shutdown_tracing
from muting.pki import IdentityProfile, issue_tls
from muting.server import AdmissionServer
from muting.services import (
    DeclarationOptions,
    WebhookRegistrar,
    build_declaration,
    build_url,
)
from muting.settings import Settings
from muting.transform.sources import ConfigMapRuleSource, FileRuleSource, RuleSource
from muting.utils.kubernetes import get_kubernetes_client
from muting.webhooks import IngressMutator

logger = WebhookLogger("muting")


def configure_logging(settings: Settings) -> None:
    """Configure structured logging from settings."""
    setup_structured_logging(
        log_level=settings.log_level.upper(),
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
        log_health_probes=settings.log_health_probes,
    )


@contextmanager
def phase(name: str) -> Iterator[None]:
    """Log and trace one startup phase."""
    logger.log_phase_start(name)
    start_time = time.time()
    with get_tracer(__name__).start_as_current_span(f"startup.{name}"):
        yield
    logger.log_phase_success(name, time.time() - start_time)


def build_rule_source(settings: Settings, api_client: client.ApiClient) -> RuleSource:
    if not settings.uses_configmap_rules:
        return FileRuleSource(settings.transforms_file)
    return ConfigMapRuleSource(
        client.CoreV1Api(api_client),
        name=settings.rules_configmap_name,
        namespace=settings.namespace,
        key=settings.transforms_configmap_key,
    )


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set ``stop_event`` on SIGTERM or SIGINT."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_stop, sig, stop_event)


def _request_stop(sig: signal.Signals, stop_event: asyncio.Event) -> None:
    logger.info(f"Received {sig.name}, shutting down")
    stop_event.set()


async def run(settings: Settings, stop_event: asyncio.Event) -> None:
    """
    Run every startup phase and serve until ``stop_event`` is set.

    Raises:
        MutingError: From whichever phase failed
    """
    with phase("configuration"):
        settings.validate_for_startup()
        metrics = MetricsCollector()

    with phase("tls"):
        profile = IdentityProfile.derive(
            settings.service, settings.namespace, settings.host
        )
        bundle = issue_tls(profile)
        logger.info(f"Serving identity:\n{profile}")

    with phase("kubernetes"):
        api_client = get_kubernetes_client()

    with phase("rules"):
        source = build_rule_source(settings, api_client)
        try:
            rules = await source.read()
            logger.info(
                f"Loaded {len(rules.transforms)} transform rule(s) from {source.describe()}"
            )
        except MutingError as e:
            if e.fatal:
                raise
            # The ConfigMap is re-read on every request and may appear later
            logger.warning(f"Transform rules not yet available: {e.args[0]}")

    with phase("registration"):
        options = DeclarationOptions(
            name=settings.name,
            namespace=settings.namespace,
            service=settings.service,
            ca_bundle=bundle.ca.certificate_pem,
            url=build_url(settings.host, settings.bind_port),
            failure_policy=settings.failure_policy,
        )
        registrar = WebhookRegistrar(
            client.AdmissionregistrationV1Api(api_client), metrics
        )
        result = await asyncio.to_thread(
            registrar.reconcile, build_declaration(options)
        )
        logger.info(
            f"MutatingWebhookConfiguration {result.name} {result.action} "
            f"(resourceVersion {result.resource_version})"
        )

    mutator = IngressMutator(
        source, metrics, failure_policy=settings.transform_failure_policy
    )
    server = AdmissionServer(
        keypair=bundle.keypair,
        mutator=mutator,
        metrics=metrics,
        host=settings.bind_host,
        port=settings.bind_port,
        drain_timeout=settings.drain_timeout_seconds,
    )
    await server.run(stop_event)


async def _serve(settings: Settings) -> None:
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)
    await run(settings, stop_event)


def load_settings() -> Settings:
    """
    Read settings from the environment.

    Raises:
        ConfigurationError: If a value does not parse
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid settings: "
            + "; ".join(
                f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()
            ),
            user_action="Check the MUTING_* environment variables",
        ) from e


def _exit_with(error: MutingError) -> NoReturn:
    logger.error(
        f"muting failed in phase '{error.phase}': {error.args[0]}",
        phase=error.phase,
        error_type=type(error).__name__,
    )
    sys.exit(1)


def main() -> None:
    """
    Main entry point.

    Exits 1 with a single diagnostic line naming the failed phase.
    """
    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_structured_logging()
        _exit_with(e)

    configure_logging(settings)
    setup_tracing(
        enabled=settings.tracing_enabled,
        endpoint=settings.tracing_endpoint,
        sample_rate=settings.tracing_sample_rate,
    )

    try:
        asyncio.run(_serve(settings))
    except MutingError as e:
        _exit_with(e)
    finally:
        shutdown_tracing()

    logger.info("Muting stopped")


if __name__ == "__main__":
    main()
