"""
Error hierarchy for the extension manager.

Each error carries a category and a hint for the user, mirroring the
phase of the manager lifecycle it was raised in.
"""


class ExtensionManagerError(Exception):
    """
    Base error class for all eirinix exceptions.

    Provides categorization and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize manager error.

        Args:
            message: Human-readable error description
            category: Error category (connection, certificate, configuration, ...)
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class KubeConnectionError(ExtensionManagerError):
    """Cannot load configuration for, or reach, the Kubernetes cluster."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="connection",
            user_action="Check the kubeconfig path or in-cluster service account and cluster connectivity",
            cause=cause,
        )


class CertificateProvisioningError(ExtensionManagerError):
    """Cannot read, generate or persist the webhook server certificate."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="certificate",
            user_action="Check secret permissions in the operator namespace and the certificate directory",
            cause=cause,
        )


class ConfigurationSyncError(ExtensionManagerError):
    """Cannot create or update the MutatingWebhookConfiguration."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            category="configuration",
            user_action="Check RBAC permissions on mutatingwebhookconfigurations",
            cause=cause,
        )


class NamespaceLabelError(ExtensionManagerError):
    """Cannot read or update the labels of the operator namespace."""

    def __init__(self, namespace: str, message: str, cause: Exception | None = None):
        super().__init__(
            message=f"Namespace {namespace}: {message}",
            category="namespace",
            user_action="Check that the namespace exists and the service account can update it",
            cause=cause,
        )
        self.namespace = namespace


class RegistrationError(ExtensionManagerError):
    """An extension webhook could not be registered."""

    def __init__(self, message: str):
        super().__init__(message=message, category="registration")


class DecodeError(ExtensionManagerError):
    """The admission request object does not decode to the expected type."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message=message, category="decode", cause=cause)
