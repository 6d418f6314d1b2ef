"""
eirinix - Pod mutating extensions behind a single admission webhook.

Extensions only implement a ``handle`` method. The manager takes care of:
- Connecting to the Kubernetes cluster
- Provisioning the TLS identity of the webhook server
- Registering one mutating webhook per extension
- Dispatching admission requests to the owning extension
"""

from eirinix.extension import Extension, FunctionExtension
from eirinix.manager import DefaultExtensionManager, new_manager
from eirinix.models.admission import AdmissionRequest, AdmissionResponse
from eirinix.models.options import ManagerOptions, WebhookOptions
from eirinix.webhook import DefaultMutatingWebhook, patch_response_from_pod

__version__ = "0.1.0"

__all__ = [
    "AdmissionRequest",
    "AdmissionResponse",
    "DefaultExtensionManager",
    "DefaultMutatingWebhook",
    "Extension",
    "FunctionExtension",
    "ManagerOptions",
    "WebhookOptions",
    "new_manager",
    "patch_response_from_pod",
]
