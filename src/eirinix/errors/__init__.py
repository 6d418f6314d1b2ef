"""
Error handling module for eirinix.

Startup errors abort ``DefaultExtensionManager.start``; ``DecodeError`` is
recovered by the webhook adapter and turned into a deny response.
"""

from .extension_errors import (
    CertificateProvisioningError,
    ConfigurationSyncError,
    DecodeError,
    ExtensionManagerError,
    KubeConnectionError,
    NamespaceLabelError,
    RegistrationError,
)

__all__ = [
    "ExtensionManagerError",
    "KubeConnectionError",
    "CertificateProvisioningError",
    "ConfigurationSyncError",
    "NamespaceLabelError",
    "RegistrationError",
    "DecodeError",
]
