"""Unit tests for the admission review wire format."""

import base64
import json

from eirinix.models.admission import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
)


class TestAdmissionRequestParsing:
    """AdmissionReview requests as sent by the API server."""

    def test_parses_camel_case_fields(self):
        review = AdmissionReview.model_validate(
            {
                "apiVersion": "admission.k8s.io/v1",
                "kind": "AdmissionReview",
                "request": {
                    "uid": "705ab4f5-6393-11e8-b7cc-42010a800002",
                    "kind": {"group": "", "version": "v1", "kind": "Pod"},
                    "operation": "CREATE",
                    "namespace": "eirini",
                    "dryRun": True,
                    "userInfo": {"username": "admin"},
                    "object": {"apiVersion": "v1", "kind": "Pod"},
                    "oldObject": None,
                    "unknownField": "ignored",
                },
            }
        )

        request = review.request
        assert request.uid == "705ab4f5-6393-11e8-b7cc-42010a800002"
        assert request.operation == "CREATE"
        assert request.dry_run is True
        assert request.user_info == {"username": "admin"}
        assert request.object == {"apiVersion": "v1", "kind": "Pod"}

    def test_empty_request(self):
        request = AdmissionRequest()
        assert request.uid == ""
        assert request.object is None

    def test_keeps_admission_api_version(self):
        review = AdmissionReview.model_validate(
            {"apiVersion": "admission.k8s.io/v1beta1", "request": {"uid": "1"}}
        )
        assert review.api_version == "admission.k8s.io/v1beta1"


class TestAdmissionResponseRendering:
    """Responses rendered for the API server."""

    def test_allowed_without_patch(self):
        wire = AdmissionResponse.allowed_response().to_wire()
        assert wire == {"uid": "", "allowed": True}

    def test_patch_is_base64_json_patch(self):
        patches = [{"op": "add", "path": "/metadata/labels", "value": {"a": "b"}}]
        wire = AdmissionResponse.patched(patches).to_wire()

        assert wire["allowed"] is True
        assert wire["patchType"] == "JSONPatch"
        assert json.loads(base64.b64decode(wire["patch"])) == patches

    def test_denied_carries_status(self):
        wire = AdmissionResponse.denied("not allowed").to_wire()
        assert wire["allowed"] is False
        assert wire["status"] == {
            "code": 403,
            "message": "not allowed",
            "reason": "Forbidden",
        }

    def test_errored_from_exception(self):
        wire = AdmissionResponse.errored(400, ValueError("bad object")).to_wire()
        assert wire["allowed"] is False
        assert wire["status"] == {"code": 400, "message": "bad object"}

    def test_audit_annotations_rendered(self):
        response = AdmissionResponse.allowed_response()
        response.audit_annotations["name"] = "test"
        assert response.to_wire()["auditAnnotations"] == {"name": "test"}

    def test_audit_annotations_accept_wire_name(self):
        response = AdmissionResponse(allowed=True, auditAnnotations={"name": "x"})
        assert response.audit_annotations == {"name": "x"}

    def test_from_raw_diff(self):
        original = {"metadata": {"name": "pod"}}
        current = {"metadata": {"name": "pod", "labels": {"a": "b"}}}

        response = AdmissionResponse.from_raw_diff(original, current)

        assert response.allowed is True
        assert response.patches == [
            {"op": "add", "path": "/metadata/labels", "value": {"a": "b"}}
        ]

    def test_from_raw_diff_without_changes(self):
        response = AdmissionResponse.from_raw_diff({"a": 1}, {"a": 1})
        assert response.patches == []
        assert "patch" not in response.to_wire()


class TestAdmissionReviewEnvelope:
    """Envelope wrapping a response."""

    def test_render_defaults_to_v1(self):
        envelope = AdmissionReview.render(AdmissionResponse.allowed_response())
        assert envelope["apiVersion"] == "admission.k8s.io/v1"
        assert envelope["kind"] == "AdmissionReview"
        assert envelope["response"]["allowed"] is True

    def test_render_with_requested_version(self):
        envelope = AdmissionReview.render(
            AdmissionResponse.allowed_response(), "admission.k8s.io/v1beta1"
        )
        assert envelope["apiVersion"] == "admission.k8s.io/v1beta1"
