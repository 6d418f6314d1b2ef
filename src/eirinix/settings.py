"""Process-wide defaults loaded from environment variables using pydantic-settings.

``ManagerOptions.from_settings()`` turns this snapshot into the immutable
options a manager is constructed with.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from eirinix.constants import (
    DEFAULT_NAMESPACE,
    DEFAULT_OPERATOR_FINGERPRINT,
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    DEFAULT_WEBHOOK_HOST,
    DEFAULT_WEBHOOK_PORT,
    FAILURE_POLICY_FAIL,
    FAILURE_POLICY_IGNORE,
)


class Settings(BaseSettings):
    """Manager configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    namespace: str = Field(
        default=DEFAULT_NAMESPACE,
        validation_alias="EIRINIX_NAMESPACE",
        description="Namespace the manager operates in",
    )
    host: str = Field(
        default=DEFAULT_WEBHOOK_HOST,
        validation_alias="EIRINIX_HOST",
        description="Address the webhook server listens on and the API server calls",
    )
    port: int = Field(
        default=DEFAULT_WEBHOOK_PORT,
        validation_alias="EIRINIX_PORT",
        description="Port of the webhook server",
    )
    kube_config: str | None = Field(
        default=None,
        validation_alias="KUBECONFIG",
        description="Path to a kubeconfig file (empty = in-cluster configuration)",
    )
    failure_policy: str = Field(
        default=FAILURE_POLICY_FAIL,
        validation_alias="EIRINIX_FAILURE_POLICY",
        description="Webhook failure policy (Fail or Ignore)",
    )
    filter_eirini_apps: bool = Field(
        default=True,
        validation_alias="EIRINIX_FILTER_APPS",
        description="Only hand Eirini application pods to extensions",
    )
    operator_fingerprint: str = Field(
        default=DEFAULT_OPERATOR_FINGERPRINT,
        validation_alias="EIRINIX_OPERATOR_FINGERPRINT",
        description="Unique string used to derive generated names",
    )
    setup_certificate_name: str = Field(
        default="",
        validation_alias="EIRINIX_SETUP_CERTIFICATE_NAME",
        description="Name of the certificate secret (empty = derived from fingerprint)",
    )
    cert_dir: str = Field(
        default="",
        validation_alias="EIRINIX_CERT_DIR",
        description="Directory the serving certificate is written to",
    )
    shutdown_timeout: float = Field(
        default=DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
        validation_alias="EIRINIX_SHUTDOWN_TIMEOUT",
        description="Seconds to wait for in-flight admission requests on shutdown",
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
        description="Enable JSON formatted logging",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log /healthz and /metrics requests",
    )

    @field_validator("failure_policy")
    @classmethod
    def validate_failure_policy(cls, value: str) -> str:
        if value not in (FAILURE_POLICY_FAIL, FAILURE_POLICY_IGNORE):
            raise ValueError(
                f"failure policy must be {FAILURE_POLICY_FAIL} or {FAILURE_POLICY_IGNORE}, got {value!r}"
            )
        return value


# Global settings instance - initialized once at module import
settings = Settings()
