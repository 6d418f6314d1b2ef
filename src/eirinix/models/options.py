"""
Manager and webhook registration options.

``ManagerOptions`` is an immutable snapshot: defaults that depend on other
fields (certificate name, certificate directory) are filled in once, while
the model is validated, and never change afterwards.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from eirinix.constants import (
    CERT_DIR_TEMPLATE,
    DEFAULT_NAMESPACE,
    DEFAULT_OPERATIONS,
    DEFAULT_OPERATOR_FINGERPRINT,
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    DEFAULT_WEBHOOK_HOST,
    DEFAULT_WEBHOOK_PORT,
    NAMESPACE_LABEL_TEMPLATE,
    OPERATION_CREATE,
    OPERATION_UPDATE,
    SETUP_CERTIFICATE_NAME_TEMPLATE,
    WEBHOOK_CONFIG_NAME_TEMPLATE,
)

if TYPE_CHECKING:
    from eirinix.kube import KubeManager
    from eirinix.server import WebhookServer
    from eirinix.settings import Settings


class ManagerOptions(BaseModel):
    """Runtime options of the extension manager."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    namespace: str = Field(
        DEFAULT_NAMESPACE, description="Namespace where the manager is operating"
    )
    host: str = Field(
        DEFAULT_WEBHOOK_HOST,
        description="Listening address, also used in the webhook client URL",
    )
    port: int = Field(DEFAULT_WEBHOOK_PORT, ge=0, le=65535, description="Listening port")
    kube_config: str | None = Field(
        None, description="Kubeconfig path. Omit for in-cluster connection"
    )
    failure_policy: Literal["Fail", "Ignore"] = Field(
        "Fail", description="Failure policy of the generated webhooks"
    )
    filter_eirini_apps: bool = Field(
        True, description="Only hand Eirini application pods to extensions"
    )
    operator_fingerprint: str = Field(
        DEFAULT_OPERATOR_FINGERPRINT,
        min_length=1,
        description="Unique string identifying the manager",
    )
    setup_certificate_name: str = Field(
        "", description="Name of the certificate secret, derived when empty"
    )
    cert_dir: str = Field(
        "", description="Directory the serving certificate is written to"
    )
    operations: tuple[Literal["CREATE", "UPDATE"], ...] = Field(
        DEFAULT_OPERATIONS, description="Admission operations routed to extensions"
    )
    shutdown_timeout: float = Field(
        DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
        gt=0,
        description="Seconds to wait for in-flight requests on shutdown",
    )

    @model_validator(mode="before")
    @classmethod
    def apply_derived_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        fingerprint = (
            data.get("operator_fingerprint") or DEFAULT_OPERATOR_FINGERPRINT
        )
        data["operator_fingerprint"] = fingerprint
        if not data.get("setup_certificate_name"):
            data["setup_certificate_name"] = SETUP_CERTIFICATE_NAME_TEMPLATE.format(
                fingerprint=fingerprint
            )
        if not data.get("cert_dir"):
            data["cert_dir"] = os.path.join(
                tempfile.gettempdir(), CERT_DIR_TEMPLATE.format(fingerprint=fingerprint)
            )
        return data

    @field_validator("operations")
    @classmethod
    def validate_operations(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("at least one operation is required")
        # Keep a stable order regardless of how they were given
        order = [OPERATION_CREATE, OPERATION_UPDATE]
        return tuple(op for op in order if op in value)

    @property
    def namespace_label(self) -> str:
        """Label key set on the operator namespace."""
        return NAMESPACE_LABEL_TEMPLATE.format(fingerprint=self.operator_fingerprint)

    @property
    def webhook_config_name(self) -> str:
        """Name of the MutatingWebhookConfiguration owned by this manager."""
        return WEBHOOK_CONFIG_NAME_TEMPLATE.format(
            fingerprint=self.operator_fingerprint, namespace=self.namespace
        )

    def webhook_url(self, path: str) -> str:
        """URL the API server uses to reach a webhook path."""
        return f"https://{self.host}:{self.port}{path}"

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ManagerOptions:
        """Build options from environment-driven settings."""
        if settings is None:
            from eirinix.settings import settings as default_settings

            settings = default_settings

        return cls(
            namespace=settings.namespace,
            host=settings.host,
            port=settings.port,
            kube_config=settings.kube_config or None,
            failure_policy=settings.failure_policy,
            filter_eirini_apps=settings.filter_eirini_apps,
            operator_fingerprint=settings.operator_fingerprint,
            setup_certificate_name=settings.setup_certificate_name,
            cert_dir=settings.cert_dir,
            shutdown_timeout=settings.shutdown_timeout,
        )


@dataclass(frozen=True)
class WebhookOptions:
    """
    Registration parameters handed to a webhook adapter.

    Attributes:
        id: Unique identifier of the webhook (the extension registration index)
        manager: Namespace-scoped Kubernetes manager of the running process
        webhook_server: Server the webhook path is registered with
        manager_options: Options of the owning extension manager
    """

    id: str
    manager_options: ManagerOptions
    manager: KubeManager | None = None
    webhook_server: WebhookServer | None = None
