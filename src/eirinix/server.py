"""
HTTPS server hosting every extension webhook.

Each registered webhook owns one path. Requests are AdmissionReview
envelopes; the response envelope uses the same admission API version as the
request. aiohttp runs every request on its own task, so a slow extension
only delays its own requests.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import ssl
from typing import TYPE_CHECKING, Protocol

from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
)
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError

from eirinix.constants import (
    ADMISSION_API_VERSION,
    ADMISSION_API_VERSION_V1BETA1,
    CERT_FILE_NAME,
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    HEALTH_PATH,
    KEY_FILE_NAME,
    METRICS_PATH,
)
from eirinix.errors import RegistrationError
from eirinix.models.admission import AdmissionResponse, AdmissionReview
from eirinix.observability.metrics import METRICS_REGISTRY

if TYPE_CHECKING:
    from eirinix.models.admission import AdmissionRequest

logger = logging.getLogger(__name__)

SUPPORTED_API_VERSIONS = (ADMISSION_API_VERSION, ADMISSION_API_VERSION_V1BETA1)


class AdmissionHandler(Protocol):
    async def handle(self, request: AdmissionRequest) -> AdmissionResponse: ...


class WebhookServer:
    """aiohttp server dispatching admission reviews by path."""

    def __init__(
        self,
        host: str,
        port: int,
        cert_dir: str | None = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    ):
        """
        Initialize webhook server.

        Args:
            host: Host interface to bind to
            port: Port to serve on
            cert_dir: Directory holding tls.crt and tls.key. Plain HTTP when None
            shutdown_timeout: Seconds to wait for in-flight requests on stop
        """
        self.host = host
        self.port = port
        self.cert_dir = cert_dir
        self.shutdown_timeout = shutdown_timeout
        self.app = Application()
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self.webhooks: dict[str, AdmissionHandler] = {}
        self.app.router.add_get(HEALTH_PATH, self._healthz_handler)
        self.app.router.add_get(METRICS_PATH, self._metrics_handler)

    def register(self, path: str, webhook: AdmissionHandler) -> None:
        """
        Serve admission reviews posted to ``path`` with ``webhook``.

        Raises:
            RegistrationError: If the path is taken or the server already runs
        """
        if path in self.webhooks or path in (HEALTH_PATH, METRICS_PATH):
            raise RegistrationError(f"Webhook path {path} is already registered")
        if self.runner is not None:
            raise RegistrationError(
                f"Cannot register {path}: webhook server is already running"
            )
        self.webhooks[path] = webhook
        self.app.router.add_post(path, self._admission_handler)
        logger.debug(f"Registered webhook path {path}")

    async def _admission_handler(self, request: Request) -> Response:
        webhook = self.webhooks[request.path]
        api_version = ADMISSION_API_VERSION

        try:
            body = await request.json()
            review = AdmissionReview.model_validate(body)
            if review.api_version not in SUPPORTED_API_VERSIONS:
                raise ValueError(f"unsupported apiVersion {review.api_version}")
            if review.request is None:
                raise ValueError("admission review has no request")
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            logger.warning(f"Malformed admission review on {request.path}: {e}")
            response = AdmissionResponse.errored(400, f"malformed admission review: {e}")
            return json_response(AdmissionReview.render(response, api_version))

        api_version = review.api_version
        response = await webhook.handle(review.request)
        return json_response(AdmissionReview.render(response, api_version))

    async def _healthz_handler(self, request: Request) -> Response:
        return Response(text="ok")

    async def _metrics_handler(self, request: Request) -> Response:
        return Response(
            body=generate_latest(METRICS_REGISTRY),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    def ssl_context(self) -> ssl.SSLContext | None:
        """Server TLS context built from the certificate directory."""
        if not self.cert_dir:
            return None
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.load_cert_chain(
            certfile=os.path.join(self.cert_dir, CERT_FILE_NAME),
            keyfile=os.path.join(self.cert_dir, KEY_FILE_NAME),
        )
        return context

    async def start(self) -> None:
        """Start accepting admission requests."""
        try:
            self.runner = AppRunner(self.app, shutdown_timeout=self.shutdown_timeout)
            await self.runner.setup()

            self.site = TCPSite(
                self.runner, self.host, self.port, ssl_context=self.ssl_context()
            )
            await self.site.start()

            logger.info(
                f"Webhook server started on {self.host}:{self.port} "
                f"serving {len(self.webhooks)} webhook(s)"
            )
        except Exception as e:
            logger.error(f"Failed to start webhook server: {e}")
            raise

    async def stop(self) -> None:
        """Stop accepting requests and drain in-flight ones."""
        if self.runner:
            # cleanup() closes the listeners first, then waits for handlers
            await self.runner.cleanup()
            self.runner = None
            self.site = None
        logger.info("Webhook server stopped")

    async def serve(self, stop_event: asyncio.Event) -> None:
        """Serve until ``stop_event`` is set, then shut down gracefully."""
        await self.start()
        try:
            await stop_event.wait()
            logger.info("Received shutdown signal")
        finally:
            await self.stop()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
