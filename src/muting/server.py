"""
HTTPS admission server.

Serves the heartbeat, metrics and admission callback endpoints over TLS
using the issued leaf identity. The listener moves through
IDLE -> LISTENING -> DRAINING -> STOPPED; draining closes the listening
socket and then waits, bounded, for requests already being handled.
"""

import asyncio
import json
import logging
import ssl
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
    middleware,
)
from opentelemetry.trace import SpanKind
from pydantic import ValidationError

from muting.constants import (
    ADMISSION_API_VERSION,
    ADMISSION_KIND,
    DEFAULT_DRAIN_TIMEOUT,
    HANDLER_CANCEL_TIMEOUT,
    HEARTBEAT_PATH,
    LEAF_FILENAMES,
    METRICS_PATH,
    MUTATE_PATH,
    PEM_ROLE_CERTIFICATE,
    PEM_ROLE_KEY,
)
from muting.errors import ServerStartFailure, ShutdownTimeout
from muting.models.admission import AdmissionResponse, AdmissionReview
from muting.observability.logging import (
    WebhookLogger,
    generate_correlation_id,
    set_correlation_id,
)
from muting.observability.metrics import METRICS_CONTENT_TYPE, MetricsCollector
from muting.observability.tracing import traced
from muting.pki.keymaterial import KeyMaterial
from muting.webhooks.ingress import IngressMutator

logger = logging.getLogger(__name__)


class ServerState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    DRAINING = "draining"
    STOPPED = "stopped"


def build_ssl_context(certificate_pem: bytes, key_pem: bytes) -> ssl.SSLContext:
    """
    Assemble a server-side TLS context from PEM bytes.

    ``load_cert_chain`` only accepts paths, so the PEMs are written to a
    private temporary directory that is removed before returning.

    Raises:
        ServerStartFailure: If the pair cannot be loaded
    """
    try:
        with tempfile.TemporaryDirectory(prefix="muting-tls-") as tmp:
            cert_path = Path(tmp) / LEAF_FILENAMES[PEM_ROLE_CERTIFICATE]
            key_path = Path(tmp) / LEAF_FILENAMES[PEM_ROLE_KEY]
            cert_path.write_bytes(certificate_pem)
            key_path.write_bytes(key_pem)
            key_path.chmod(0o600)

            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.minimum_version = ssl.TLSVersion.TLSv1_2
            context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (OSError, ssl.SSLError) as e:
        raise ServerStartFailure(f"Unable to load TLS credential: {e}", e) from e
    return context


class AdmissionServer:
    """TLS server for the admission callback, heartbeat and metrics."""

    def __init__(
        self,
        keypair: KeyMaterial,
        mutator: IngressMutator,
        metrics: MetricsCollector,
        host: str | None = None,
        port: int = 8443,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ):
        """
        Initialize admission server.

        Args:
            keypair: Leaf key and certificate to serve with
            mutator: Admission decision policy
            metrics: Collector exposed on the metrics endpoint
            host: Host interface to bind to; None binds every interface
            port: Port to listen on
            drain_timeout: Seconds to wait for in-flight requests on shutdown
        """
        self.keypair = keypair
        self.mutator = mutator
        self.metrics = metrics
        self.host = host
        self.port = port
        self.drain_timeout = drain_timeout

        self.state = ServerState.IDLE
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self.logger = WebhookLogger(self.__class__.__name__)

        self._in_flight = 0
        self._handlers: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

        self.app = Application(middlewares=[self._track_request])
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get(HEARTBEAT_PATH, self._status_handler)
        self.app.router.add_get(METRICS_PATH, self._metrics_handler)
        self.app.router.add_post(MUTATE_PATH, self._mutate_handler)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def addresses(self) -> list[Any]:
        """Socket addresses the listener is bound to."""
        return list(self.runner.addresses) if self.runner else []

    @property
    def bind_label(self) -> str:
        return f"{self.host or '*'}:{self.port}"

    @middleware
    async def _track_request(self, request: Request, handler):
        set_correlation_id(generate_correlation_id())
        task = asyncio.current_task()
        self._in_flight += 1
        self._idle.clear()
        if task is not None:
            self._handlers.add(task)
        try:
            return await handler(request)
        finally:
            self._handlers.discard(task)
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def _status_handler(self, request: Request) -> Response:
        return Response(status=200)

    async def _metrics_handler(self, request: Request) -> Response:
        try:
            body = self.metrics.render()
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}", exc_info=True)
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )
        return Response(body=body, headers={"Content-Type": METRICS_CONTENT_TYPE})

    @traced("admission_review", span_kind=SpanKind.SERVER)
    async def _mutate_handler(self, request: Request) -> Response:
        raw = await request.read()
        try:
            review = AdmissionReview.model_validate(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return self._bad_request(f"malformed AdmissionReview body: {e}")
        except ValidationError as e:
            return self._bad_request(f"invalid AdmissionReview: {e.error_count()} error(s)")

        if review.api_version != ADMISSION_API_VERSION:
            return self._bad_request(
                f"unsupported AdmissionReview version {review.api_version!r}, "
                f"expected {ADMISSION_API_VERSION!r}"
            )
        if review.request is None:
            return self._bad_request("AdmissionReview has no request")

        admission_request = review.request
        if admission_request.uid:
            set_correlation_id(admission_request.uid[:8])
        kind = admission_request.kind.kind if admission_request.kind else "unknown"

        with self.metrics.track_admission(kind):
            try:
                response = await self.mutator.mutate(admission_request)
            except Exception as e:
                self.logger.error(
                    f"Mutation of {kind} {admission_request.namespace}/"
                    f"{admission_request.name} failed: {e}",
                    exc_info=True,
                    error_type=type(e).__name__,
                )
                self.metrics.record_admission(kind, admission_request.operation, "rejected")
                response = AdmissionResponse.deny(
                    admission_request.uid, f"mutation failed: {type(e).__name__}"
                )

        reply = AdmissionReview(
            api_version=review.api_version, kind=ADMISSION_KIND, response=response
        )
        return json_response(reply.to_wire())

    def _bad_request(self, reason: str) -> Response:
        self.logger.warning(f"Rejected admission callback: {reason}")
        return Response(text=reason, status=400)

    async def start(self) -> None:
        """
        Bind the listener.

        Raises:
            ServerStartFailure: If the TLS credential is unusable or the
                address cannot be bound
        """
        if self.state is not ServerState.IDLE:
            raise ServerStartFailure(f"Server cannot start from state {self.state.value}")

        ssl_context = build_ssl_context(
            self.keypair.certificate_pem, self.keypair.key_pem
        )

        # Handlers are joined in drain(); cleanup only closes what is left
        self.runner = AppRunner(self.app, shutdown_timeout=HANDLER_CANCEL_TIMEOUT)
        await self.runner.setup()
        self.site = TCPSite(self.runner, self.host, self.port, ssl_context=ssl_context)
        try:
            await self.site.start()
        except OSError as e:
            await self.runner.cleanup()
            self.runner = None
            self.site = None
            self.state = ServerState.STOPPED
            raise ServerStartFailure(
                f"Unable to listen on {self.bind_label}: {e}", e
            ) from e

        self.state = ServerState.LISTENING
        logger.info(f"Admission server listening on https://{self.bind_label}")

    async def drain(self) -> None:
        """
        Stop accepting connections and wait for in-flight requests.

        Raises:
            ShutdownTimeout: If requests are still running after
                ``drain_timeout`` seconds
        """
        if self.state is not ServerState.LISTENING:
            return

        self.state = ServerState.DRAINING
        logger.info(
            f"Draining admission server ({self._in_flight} request(s) in flight)"
        )

        if self.site:
            await self.site.stop()
            self.site = None

        try:
            await asyncio.wait_for(self._idle.wait(), timeout=self.drain_timeout)
        except TimeoutError:
            pending = self._in_flight
            logger.warning(f"Cancelling {pending} request(s) still in flight")
            await self._cancel_handlers()
            await self._cleanup()
            raise ShutdownTimeout(self.drain_timeout, pending) from None

        await self._cleanup()
        logger.info("Admission server stopped")

    async def _cancel_handlers(self) -> None:
        handlers = list(self._handlers)
        for task in handlers:
            task.cancel()
        if handlers:
            await asyncio.wait(handlers, timeout=HANDLER_CANCEL_TIMEOUT)

    async def _cleanup(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        self.state = ServerState.STOPPED

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Serve until ``stop_event`` is set, then drain.

        Args:
            stop_event: Set by the signal handlers to request shutdown
        """
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.drain()
