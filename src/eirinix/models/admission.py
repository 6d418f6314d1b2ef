"""
Admission review wire format.

Models the ``admission.k8s.io`` AdmissionReview envelope exchanged with the
Kubernetes API server. Requests are parsed leniently (unknown fields are
ignored); responses are rendered explicitly so the envelope matches the
admission API version the request was sent with.
"""

import base64
import json
from typing import Any

import jsonpatch
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from eirinix.constants import (
    ADMISSION_API_VERSION,
    ADMISSION_REVIEW_KIND,
    PATCH_TYPE_JSON,
)


class AdmissionRequest(BaseModel):
    """The ``request`` part of an AdmissionReview."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    uid: str = ""
    kind: dict[str, str] | None = None
    resource: dict[str, str] | None = None
    sub_resource: str | None = None
    request_kind: dict[str, str] | None = None
    request_resource: dict[str, str] | None = None
    name: str | None = None
    namespace: str | None = None
    operation: str = ""
    user_info: dict[str, Any] | None = None
    # Raw object as sent by the API server, decoded to a typed Pod by the scheme
    object: Any = None
    old_object: Any = None
    dry_run: bool | None = None
    options: dict[str, Any] | None = None


class AdmissionStatus(BaseModel):
    """Result details of a denied or errored admission."""

    code: int | None = None
    message: str = ""
    reason: str | None = None

    def to_wire(self) -> dict[str, Any]:
        status: dict[str, Any] = {}
        if self.code is not None:
            status["code"] = self.code
        if self.message:
            status["message"] = self.message
        if self.reason:
            status["reason"] = self.reason
        return status


class AdmissionResponse(BaseModel):
    """
    The ``response`` part of an AdmissionReview.

    Patches are kept as a list of RFC 6902 operations and serialised as a
    base64 JSONPatch document only when the response is rendered.
    """

    model_config = ConfigDict(populate_by_name=True)

    uid: str = ""
    allowed: bool = False
    result: AdmissionStatus | None = None
    patches: list[dict[str, Any]] = Field(default_factory=list)
    audit_annotations: dict[str, str] = Field(
        default_factory=dict, alias="auditAnnotations"
    )
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def allowed_response(cls, message: str = "") -> "AdmissionResponse":
        """Allow the object unmodified."""
        result = AdmissionStatus(code=200, message=message) if message else None
        return cls(allowed=True, result=result)

    @classmethod
    def denied(cls, message: str, code: int = 403) -> "AdmissionResponse":
        """Reject the object with a reason."""
        return cls(
            allowed=False,
            result=AdmissionStatus(code=code, message=message, reason="Forbidden"),
        )

    @classmethod
    def errored(cls, code: int, error: Exception | str) -> "AdmissionResponse":
        """Reject the object because it could not be processed."""
        return cls(allowed=False, result=AdmissionStatus(code=code, message=str(error)))

    @classmethod
    def patched(cls, patches: list[dict[str, Any]]) -> "AdmissionResponse":
        """Allow the object with the given JSON patch operations."""
        return cls(allowed=True, patches=list(patches))

    @classmethod
    def from_raw_diff(
        cls, original: dict[str, Any] | None, current: dict[str, Any]
    ) -> "AdmissionResponse":
        """Allow the object with the patch turning ``original`` into ``current``."""
        patch = jsonpatch.make_patch(original or {}, current)
        return cls.patched(patch.patch)

    def to_wire(self) -> dict[str, Any]:
        """Render the response as the API server expects it."""
        response: dict[str, Any] = {"uid": self.uid, "allowed": self.allowed}
        if self.result is not None:
            status = self.result.to_wire()
            if status:
                response["status"] = status
        if self.patches:
            document = json.dumps(self.patches).encode("utf-8")
            response["patch"] = base64.b64encode(document).decode("ascii")
            response["patchType"] = PATCH_TYPE_JSON
        if self.audit_annotations:
            response["auditAnnotations"] = dict(self.audit_annotations)
        if self.warnings:
            response["warnings"] = list(self.warnings)
        return response


class AdmissionReview(BaseModel):
    """AdmissionReview envelope as sent by the API server."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str = Field(ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_REVIEW_KIND
    request: AdmissionRequest | None = None

    @staticmethod
    def render(
        response: AdmissionResponse, api_version: str = ADMISSION_API_VERSION
    ) -> dict[str, Any]:
        """Wrap a response in an envelope of the given admission API version."""
        return {
            "apiVersion": api_version,
            "kind": ADMISSION_REVIEW_KIND,
            "response": response.to_wire(),
        }
