"""
Data models for eirinix.

- options: immutable manager options and per-webhook registration options
- admission: admission review wire format
"""

from .admission import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    AdmissionStatus,
)
from .options import ManagerOptions, WebhookOptions

__all__ = [
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionReview",
    "AdmissionStatus",
    "ManagerOptions",
    "WebhookOptions",
]
