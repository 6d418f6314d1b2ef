"""
Extension manager.

The manager collects extensions and, when started:
1. Connects to the Kubernetes cluster
2. Builds the namespace-scoped Kubernetes manager and the webhook server
3. Sets up the webhook server certificate
4. Labels the operator namespace with the fingerprint label
5. Registers one mutating webhook per extension, in registration order
6. Commits the MutatingWebhookConfiguration
7. Serves admission requests until it is told to stop

Any failure before serving aborts ``start``; nothing registered so far is
rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException

from eirinix.credsgen import CertificateGenerator, InMemoryGenerator
from eirinix.errors import KubeConnectionError, NamespaceLabelError, RegistrationError
from eirinix.extension import Extension, as_extension
from eirinix.kube import KubeManager, new_kube_connection
from eirinix.models.options import ManagerOptions, WebhookOptions
from eirinix.observability.logging import flush_logging, setup_structured_logging
from eirinix.scheme import Scheme, default_scheme
from eirinix.server import WebhookServer
from eirinix.settings import settings
from eirinix.webhook import AdmissionWebhook, DefaultMutatingWebhook
from eirinix.webhook_config import WebhookConfig


def configure_logging() -> None:
    """Configure structured logging from the environment settings."""
    setup_structured_logging(
        log_level=settings.log_level.upper(),
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
        log_health_probes=settings.log_health_probes,
    )


SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def setup_signal_handler() -> asyncio.Event:
    """Event set on SIGINT or SIGTERM, for the running event loop."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, stop_event.set)
    return stop_event


def remove_signal_handler() -> None:
    """Remove the handlers installed by ``setup_signal_handler``."""
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.remove_signal_handler(sig)


class DefaultExtensionManager:
    """Registers extensions as mutating webhooks and serves them."""

    def __init__(
        self,
        options: ManagerOptions | None = None,
        logger: logging.Logger | None = None,
        generator: CertificateGenerator | None = None,
        scheme: Scheme | None = None,
    ):
        """
        Initialize the manager.

        Args:
            options: Manager options. Defaults are read from the environment
            logger: Logger used internally and handed to extensions
            generator: Certificate generator, in-memory by default
            scheme: Type registry used to decode pods
        """
        self.options = options if options is not None else ManagerOptions.from_settings()
        self.logger = logger or logging.getLogger("eirinix")
        self.credsgen = generator or InMemoryGenerator()
        self.scheme = scheme or default_scheme()
        self.extensions: list[Extension] = []
        self.kube_manager: KubeManager | None = None
        self.webhook_server: WebhookServer | None = None
        self.webhook_config: WebhookConfig | None = None
        self.webhooks: list[DefaultMutatingWebhook] = []
        self._kube_connection: client.ApiClient | None = None
        self._connection_lock = threading.Lock()
        self._registration_started = False

    def add_extension(self, extension: Any) -> None:
        """
        Add an extension to the manager.

        Extensions are registered when ``start`` runs; adding one afterwards
        is not allowed.

        Raises:
            RegistrationError: If the manager already registered its extensions
        """
        if self._registration_started:
            raise RegistrationError(
                "Extensions cannot be added once the manager has started"
            )
        self.extensions.append(as_extension(extension))

    def list_extensions(self) -> tuple[Extension, ...]:
        """Extensions added to the manager, in registration order."""
        return tuple(self.extensions)

    def get_logger(self) -> logging.Logger:
        return self.logger

    def get_kube_connection(self) -> client.ApiClient:
        """
        Connect to the Kubernetes cluster if not connected yet.

        The first call loads the configuration and validates the connection;
        later calls return the cached client.

        Raises:
            KubeConnectionError: If the cluster cannot be reached
        """
        with self._connection_lock:
            if self._kube_connection is None:
                self._kube_connection = new_kube_connection(self.options.kube_config)
            return self._kube_connection

    async def setup(self) -> None:
        """
        Connect, then prepare the webhook server, certificate and namespace.

        Raises:
            KubeConnectionError: If connecting to the cluster fails
            CertificateProvisioningError: If the certificate cannot be set up
            NamespaceLabelError: If the namespace cannot be labelled
        """
        try:
            kube_connection = await asyncio.to_thread(self.get_kube_connection)
        except KubeConnectionError:
            self.logger.error("Failed connecting to kubernetes cluster")
            raise

        self.kube_manager = KubeManager(
            kube_connection, self.options.namespace, self.scheme
        )
        await self.operator_setup()

    async def operator_setup(self) -> None:
        """Create the webhook server and configuration, certificate and label."""
        self.webhook_config = WebhookConfig(
            self.kube_manager,
            self.options,
            self.credsgen,
            self.options.webhook_config_name,
            self.options.setup_certificate_name,
        )
        self.webhook_server = WebhookServer(
            host=self.options.host,
            port=self.options.port,
            cert_dir=self.webhook_config.cert_dir,
            shutdown_timeout=self.options.shutdown_timeout,
        )

        await self.webhook_config.setup_certificate()
        await self.set_operator_namespace_label()

    async def set_operator_namespace_label(self) -> None:
        """
        Label the operator namespace with ``<fingerprint>-ns=<namespace>``.

        Leaves the namespace untouched when the label is already set.

        Raises:
            NamespaceLabelError: If the namespace cannot be read or updated
        """
        namespace = self.options.namespace
        label = self.options.namespace_label
        core_v1 = self.kube_manager.core_v1

        try:
            ns = await asyncio.to_thread(core_v1.read_namespace, name=namespace)
        except ApiException as e:
            raise NamespaceLabelError(
                namespace, f"getting the namespace object: {e.reason}", cause=e
            ) from e

        labels = dict(ns.metadata.labels or {})
        if labels.get(label) == namespace:
            self.logger.debug(f"Namespace {namespace} already labelled {label}")
            return

        labels[label] = namespace
        ns.metadata.labels = labels
        try:
            await asyncio.to_thread(core_v1.replace_namespace, name=namespace, body=ns)
        except ApiException as e:
            raise NamespaceLabelError(
                namespace, f"updating the namespace object: {e.reason}", cause=e
            ) from e
        self.logger.info(f"Labelled namespace {namespace} with {label}={namespace}")

    async def register_extensions(self) -> list[AdmissionWebhook]:
        """
        Generate and register one webhook per extension.

        Webhook IDs are the zero-based registration index of each extension.

        Raises:
            RegistrationError: If a webhook cannot be registered
            ConfigurationSyncError: If the configuration cannot be committed
        """
        self._registration_started = True
        admission_webhooks: list[AdmissionWebhook] = []
        for index, extension in enumerate(self.extensions):
            webhook = DefaultMutatingWebhook(extension, self, self.scheme)
            admission_webhook = webhook.register_admission_webhook(
                WebhookOptions(
                    id=str(index),
                    manager=self.kube_manager,
                    webhook_server=self.webhook_server,
                    manager_options=self.options,
                )
            )
            self.webhooks.append(webhook)
            admission_webhooks.append(admission_webhook)

        if self.webhook_config is None:
            raise RegistrationError("Webhook configuration is not set up")
        await self.webhook_config.generate_webhook_server_config(admission_webhooks)
        return admission_webhooks

    async def start(self, stop_event: asyncio.Event | None = None) -> None:
        """
        Register every extension and serve until ``stop_event`` is set.

        Args:
            stop_event: Event ending the serve loop. Defaults to an event set
                on SIGINT or SIGTERM.
        """
        handles_signals = False
        try:
            await self.setup()
            await self.register_extensions()

            if stop_event is None:
                stop_event = setup_signal_handler()
                handles_signals = True
            await self.webhook_server.serve(stop_event)
        finally:
            if handles_signals:
                remove_signal_handler()
            flush_logging(self.logger)

    def run(self) -> None:
        """Blocking version of ``start``, with logging configured."""
        configure_logging()
        asyncio.run(self.start())


def new_manager(
    options: ManagerOptions | None = None, logger: logging.Logger | None = None
) -> DefaultExtensionManager:
    """Manager for the Kubernetes cluster, the kubeconfig and logger are optional."""
    return DefaultExtensionManager(options=options, logger=logger)
