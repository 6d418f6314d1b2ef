"""
Certificate lifecycle and MutatingWebhookConfiguration sync.

The serving certificate and its CA are stored in a secret named after the
operator fingerprint so every replica and restart serves the same identity.
Certificate setup and configuration sync are separate steps: the
certificate can be rotated without touching the registered webhooks.
"""

import asyncio
import base64
import logging
import os
from dataclasses import dataclass
from datetime import timedelta

from kubernetes import client
from kubernetes.client.rest import ApiException

from eirinix.constants import (
    CA_FILE_NAME,
    CERT_FILE_NAME,
    CERT_RENEWAL_WINDOW_DAYS,
    CERT_SECRET_CA_KEY,
    CERT_SECRET_CA_PRIVATE_KEY_KEY,
    CERT_SECRET_CERTIFICATE_KEY,
    CERT_SECRET_PRIVATE_KEY_KEY,
    KEY_FILE_NAME,
)
from eirinix.credsgen import (
    Certificate,
    CertificateGenerator,
    CertificateRequest,
    certificate_is_valid,
)
from eirinix.errors import CertificateProvisioningError, ConfigurationSyncError
from eirinix.kube import KubeManager
from eirinix.models.options import ManagerOptions
from eirinix.observability.metrics import REGISTERED_WEBHOOKS
from eirinix.webhook import AdmissionWebhook

logger = logging.getLogger(__name__)

MANAGED_BY_LABEL_KEY = "app.kubernetes.io/managed-by"


@dataclass(frozen=True)
class CertificateMaterial:
    """CA and server certificate served by the webhook server."""

    ca: Certificate
    server: Certificate

    def to_secret_data(self) -> dict[str, str]:
        return {
            CERT_SECRET_CERTIFICATE_KEY: _b64(self.server.certificate),
            CERT_SECRET_PRIVATE_KEY_KEY: _b64(self.server.private_key),
            CERT_SECRET_CA_KEY: _b64(self.ca.certificate),
            CERT_SECRET_CA_PRIVATE_KEY_KEY: _b64(self.ca.private_key),
        }

    @classmethod
    def from_secret_data(cls, data: dict[str, str] | None) -> "CertificateMaterial | None":
        """Material stored in a secret, or None if keys are missing."""
        data = data or {}
        keys = (
            CERT_SECRET_CERTIFICATE_KEY,
            CERT_SECRET_PRIVATE_KEY_KEY,
            CERT_SECRET_CA_KEY,
            CERT_SECRET_CA_PRIVATE_KEY_KEY,
        )
        if not all(data.get(key) for key in keys):
            return None
        try:
            return cls(
                ca=Certificate(
                    certificate=base64.b64decode(data[CERT_SECRET_CA_KEY]),
                    private_key=base64.b64decode(data[CERT_SECRET_CA_PRIVATE_KEY_KEY]),
                    is_ca=True,
                ),
                server=Certificate(
                    certificate=base64.b64decode(data[CERT_SECRET_CERTIFICATE_KEY]),
                    private_key=base64.b64decode(data[CERT_SECRET_PRIVATE_KEY_KEY]),
                ),
            )
        except ValueError:
            return None


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


class WebhookConfig:
    """TLS identity and cluster configuration of the webhook server."""

    def __init__(
        self,
        kube_manager: KubeManager,
        options: ManagerOptions,
        generator: CertificateGenerator,
        config_name: str,
        certificate_name: str,
        renewal_window: timedelta = timedelta(days=CERT_RENEWAL_WINDOW_DAYS),
    ):
        """
        Initialize webhook configuration.

        Args:
            kube_manager: Namespace-scoped Kubernetes clients
            options: Manager options (namespace, host, cert dir, fingerprint)
            generator: Capability generating certificates
            config_name: Name of the MutatingWebhookConfiguration
            certificate_name: Name of the secret storing the certificate
            renewal_window: Certificates expiring within it are regenerated
        """
        self.kube_manager = kube_manager
        self.options = options
        self.generator = generator
        self.config_name = config_name
        self.certificate_name = certificate_name
        self.renewal_window = renewal_window
        self.cert_dir = options.cert_dir
        self.material: CertificateMaterial | None = None
        self.webhooks: list[AdmissionWebhook] = []

    @property
    def ca_bundle(self) -> str | None:
        """Base64 encoded CA certificate embedded in the configuration."""
        if self.material is None:
            return None
        return _b64(self.material.ca.certificate)

    async def setup_certificate(self) -> CertificateMaterial:
        """
        Make sure a valid serving certificate exists and is on disk.

        Reuses the certificate stored in the secret while it is valid for the
        configured host and outside the renewal window, generates and stores
        a new one otherwise.

        Raises:
            CertificateProvisioningError: If the certificate cannot be read,
                generated, stored or written to the certificate directory
        """
        namespace = self.kube_manager.namespace
        secret = await self._read_secret()
        material = CertificateMaterial.from_secret_data(secret.data if secret else None)

        if material and certificate_is_valid(
            material.server.certificate, self.options.host, self.renewal_window
        ):
            logger.info(
                f"Reusing webhook certificate from secret {namespace}/{self.certificate_name}"
            )
        else:
            if secret is not None:
                logger.info(
                    f"Certificate in secret {namespace}/{self.certificate_name} "
                    "is missing or no longer valid, rotating it"
                )
            material = await asyncio.to_thread(self._generate_material)
            await self._store_secret(material, secret)

        self._write_certificate_files(material)
        self.material = material
        return material

    async def _read_secret(self) -> client.V1Secret | None:
        namespace = self.kube_manager.namespace
        try:
            return await asyncio.to_thread(
                self.kube_manager.core_v1.read_namespaced_secret,
                name=self.certificate_name,
                namespace=namespace,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise CertificateProvisioningError(
                f"Failed to read certificate secret {namespace}/{self.certificate_name}: {e.reason}",
                cause=e,
            ) from e

    def _generate_material(self) -> CertificateMaterial:
        host = self.options.host
        fingerprint = self.options.operator_fingerprint
        logger.info(f"Generating webhook server certificate for {host}")
        try:
            ca = self.generator.generate_certificate(
                CertificateRequest(common_name=f"{fingerprint}-ca", is_ca=True)
            )
            server = self.generator.generate_certificate(
                CertificateRequest(common_name=host, alternative_names=[host]), ca
            )
        except Exception as e:
            raise CertificateProvisioningError(
                f"Failed to generate webhook server certificate: {e}", cause=e
            ) from e
        return CertificateMaterial(ca=ca, server=server)

    async def _store_secret(
        self, material: CertificateMaterial, existing: client.V1Secret | None
    ) -> None:
        namespace = self.kube_manager.namespace
        metadata = client.V1ObjectMeta(
            name=self.certificate_name,
            namespace=namespace,
            labels={MANAGED_BY_LABEL_KEY: self.options.operator_fingerprint},
        )
        if existing is not None and existing.metadata is not None:
            metadata.resource_version = existing.metadata.resource_version
        body = client.V1Secret(
            metadata=metadata, type="Opaque", data=material.to_secret_data()
        )

        core_v1 = self.kube_manager.core_v1
        try:
            if existing is None:
                await asyncio.to_thread(
                    core_v1.create_namespaced_secret, namespace=namespace, body=body
                )
                logger.info(
                    f"Created certificate secret {namespace}/{self.certificate_name}"
                )
            else:
                await asyncio.to_thread(
                    core_v1.replace_namespaced_secret,
                    name=self.certificate_name,
                    namespace=namespace,
                    body=body,
                )
                logger.info(
                    f"Replaced certificate secret {namespace}/{self.certificate_name}"
                )
        except ApiException as e:
            raise CertificateProvisioningError(
                f"Failed to store certificate secret {namespace}/{self.certificate_name}: {e.reason}",
                cause=e,
            ) from e

    def _write_certificate_files(self, material: CertificateMaterial) -> None:
        try:
            os.makedirs(self.cert_dir, exist_ok=True)
            files = {
                CERT_FILE_NAME: material.server.certificate,
                KEY_FILE_NAME: material.server.private_key,
                CA_FILE_NAME: material.ca.certificate,
            }
            for file_name, content in files.items():
                path = os.path.join(self.cert_dir, file_name)
                with open(path, "wb") as f:
                    f.write(content)
            os.chmod(os.path.join(self.cert_dir, KEY_FILE_NAME), 0o600)
        except OSError as e:
            raise CertificateProvisioningError(
                f"Failed to write certificates to {self.cert_dir}: {e}", cause=e
            ) from e
        logger.debug(f"Wrote webhook server certificates to {self.cert_dir}")

    def build_configuration(
        self, webhooks: list[AdmissionWebhook]
    ) -> client.V1MutatingWebhookConfiguration:
        """Configuration object routing pods to the given webhooks."""
        return client.V1MutatingWebhookConfiguration(
            api_version="admissionregistration.k8s.io/v1",
            kind="MutatingWebhookConfiguration",
            metadata=client.V1ObjectMeta(
                name=self.config_name,
                labels={MANAGED_BY_LABEL_KEY: self.options.operator_fingerprint},
            ),
            webhooks=[webhook.to_kubernetes(self.ca_bundle) for webhook in webhooks],
        )

    async def generate_webhook_server_config(
        self, webhooks: list[AdmissionWebhook]
    ) -> client.V1MutatingWebhookConfiguration:
        """
        Create or update the MutatingWebhookConfiguration.

        An existing configuration with the same name gets its webhooks
        replaced; otherwise a new one is created.

        Raises:
            ConfigurationSyncError: If the certificate is not set up or the
                API server rejects the change
        """
        if self.material is None:
            raise ConfigurationSyncError(
                f"Cannot sync {self.config_name}: webhook certificate is not set up"
            )

        body = self.build_configuration(webhooks)
        admission_v1 = self.kube_manager.admission_v1

        try:
            existing = await asyncio.to_thread(
                admission_v1.read_mutating_webhook_configuration, name=self.config_name
            )
        except ApiException as e:
            if e.status != 404:
                raise ConfigurationSyncError(
                    f"Failed to read webhook configuration {self.config_name}: {e.reason}",
                    cause=e,
                ) from e
            existing = None

        try:
            if existing is None:
                result = await asyncio.to_thread(
                    admission_v1.create_mutating_webhook_configuration, body=body
                )
                logger.info(
                    f"Created webhook configuration {self.config_name} "
                    f"with {len(webhooks)} webhook(s)"
                )
            else:
                existing.webhooks = body.webhooks
                result = await asyncio.to_thread(
                    admission_v1.replace_mutating_webhook_configuration,
                    name=self.config_name,
                    body=existing,
                )
                logger.info(
                    f"Updated webhook configuration {self.config_name} "
                    f"with {len(webhooks)} webhook(s)"
                )
        except ApiException as e:
            raise ConfigurationSyncError(
                f"Failed to write webhook configuration {self.config_name}: {e.reason}",
                cause=e,
            ) from e

        self.webhooks = list(webhooks)
        REGISTERED_WEBHOOKS.set(len(webhooks))
        return result
