"""
Unit tests for the mutating webhook adapter.

The adapter is exercised directly, without a running server or cluster.
"""

from unittest.mock import MagicMock

import pytest
from kubernetes import client

from eirinix.errors import RegistrationError
from eirinix.extension import FunctionExtension
from eirinix.models.admission import AdmissionRequest, AdmissionResponse
from eirinix.models.options import ManagerOptions, WebhookOptions
from eirinix.scheme import default_scheme
from eirinix.server import WebhookServer
from eirinix.webhook import (
    DefaultMutatingWebhook,
    is_eirini_app,
    patch_response_from_pod,
)

APP_POD = {
    "apiVersion": "v1",
    "kind": "Pod",
    "metadata": {"name": "app-0", "labels": {"source_type": "APP"}},
}


def registered_webhook(extension, webhook_id="0", **option_overrides):
    options = ManagerOptions(namespace="eirini", host="127.0.0.1", **option_overrides)
    webhook = DefaultMutatingWebhook(extension)
    admission_webhook = webhook.register_admission_webhook(
        WebhookOptions(
            id=webhook_id,
            manager=MagicMock(),
            webhook_server=WebhookServer("127.0.0.1", 0),
            manager_options=options,
        )
    )
    return webhook, admission_webhook


class TestRegistration:
    """Registering the adapter with a webhook server."""

    def test_errors_without_a_manager(self, test_extension):
        webhook = DefaultMutatingWebhook(test_extension)
        with pytest.raises(RegistrationError):
            webhook.register_admission_webhook(
                WebhookOptions(
                    id="volume",
                    manager_options=ManagerOptions(namespace="eirini"),
                    webhook_server=WebhookServer("127.0.0.1", 0),
                )
            )

    def test_errors_without_a_server(self, test_extension):
        webhook = DefaultMutatingWebhook(test_extension)
        with pytest.raises(RegistrationError):
            webhook.register_admission_webhook(
                WebhookOptions(
                    id="volume",
                    manager_options=ManagerOptions(namespace="eirini"),
                    manager=MagicMock(),
                )
            )

    @pytest.mark.parametrize("kind", ["object", "function"])
    def test_errors_without_references_for_any_extension(self, kind, make_extension):
        if kind == "object":
            extension = make_extension("a")
        else:
            extension = FunctionExtension(lambda m, p, r: None, name="fn")
        webhook = DefaultMutatingWebhook(extension)
        with pytest.raises(RegistrationError):
            webhook.register_admission_webhook(
                WebhookOptions(id="0", manager_options=ManagerOptions())
            )

    def test_name_and_path_derived_from_id(self, test_extension):
        webhook, admission_webhook = registered_webhook(test_extension, webhook_id="3")

        assert webhook.id == "3"
        assert webhook.name == "3.eirini-x.org"
        assert webhook.path == "/3.eirini-x.org"
        assert admission_webhook.url == "https://127.0.0.1:8443/3.eirini-x.org"

    def test_path_registered_with_server(self, test_extension):
        server = WebhookServer("127.0.0.1", 0)
        webhook = DefaultMutatingWebhook(test_extension)
        webhook.register_admission_webhook(
            WebhookOptions(
                id="0",
                manager=MagicMock(),
                webhook_server=server,
                manager_options=ManagerOptions(),
            )
        )
        assert server.webhooks["/0.eirini-x.org"] is webhook

    def test_duplicate_id_is_rejected(self, test_extension):
        server = WebhookServer("127.0.0.1", 0)
        opts = WebhookOptions(
            id="0",
            manager=MagicMock(),
            webhook_server=server,
            manager_options=ManagerOptions(),
        )
        DefaultMutatingWebhook(test_extension).register_admission_webhook(opts)
        with pytest.raises(RegistrationError):
            DefaultMutatingWebhook(test_extension).register_admission_webhook(opts)


class TestAdmissionWebhookEntry:
    """Rendering the registered webhook into the cluster configuration."""

    def test_rule_scoped_to_pod_creation(self, test_extension):
        _, admission_webhook = registered_webhook(test_extension)
        entry = admission_webhook.to_kubernetes("Y2E=")

        assert isinstance(entry, client.V1MutatingWebhook)
        assert entry.name == "0.eirini-x.org"
        assert entry.failure_policy == "Fail"
        assert entry.side_effects == "None"
        assert entry.client_config.ca_bundle == "Y2E="
        assert entry.client_config.url == "https://127.0.0.1:8443/0.eirini-x.org"
        assert entry.namespace_selector.match_labels == {"eirini-x-ns": "eirini"}
        [rule] = entry.rules
        assert rule.resources == ["pods"]
        assert rule.operations == ["CREATE"]
        assert rule.api_groups == [""]
        assert rule.api_versions == ["v1"]

    def test_failure_policy_passthrough(self, test_extension):
        _, admission_webhook = registered_webhook(test_extension, failure_policy="Ignore")
        assert admission_webhook.to_kubernetes(None).failure_policy == "Ignore"

    def test_update_operation(self, test_extension):
        _, admission_webhook = registered_webhook(
            test_extension, operations=("CREATE", "UPDATE")
        )
        [rule] = admission_webhook.to_kubernetes(None).rules
        assert rule.operations == ["CREATE", "UPDATE"]


class TestHandle:
    """Delegating admission requests to the extension."""

    @pytest.mark.asyncio
    async def test_delegates_to_the_extension(self, test_extension):
        webhook = DefaultMutatingWebhook(test_extension)

        response = await webhook.handle(AdmissionRequest())

        assert response.audit_annotations["name"] == "test"
        assert len(test_extension.pods) == 1

    @pytest.mark.asyncio
    async def test_valid_pod_reaches_the_extension(self, test_extension):
        webhook = DefaultMutatingWebhook(test_extension)

        response = await webhook.handle(
            AdmissionRequest(
                uid="1",
                object={
                    "apiVersion": "v1",
                    "kind": "Pod",
                    "metadata": {"name": "app"},
                    "spec": {"containers": [{"name": "c", "image": "busybox"}]},
                },
            )
        )

        assert response.allowed is True
        assert response.audit_annotations == {"name": "test"}
        [pod] = test_extension.pods
        assert pod.metadata.name == "app"
        assert pod.spec.containers[0].image == "busybox"

    @pytest.mark.asyncio
    async def test_manager_is_handed_to_the_extension(self):
        manager = MagicMock()
        seen = []

        async def record(mgr, pod, request):
            seen.append(mgr)
            return AdmissionResponse.allowed_response()

        webhook = DefaultMutatingWebhook(FunctionExtension(record), manager)
        await webhook.handle(AdmissionRequest())

        assert seen == [manager]

    @pytest.mark.asyncio
    async def test_sync_function_extension(self, function_extension):
        webhook = DefaultMutatingWebhook(function_extension)

        response = await webhook.handle(AdmissionRequest(uid="abc"))

        assert response.allowed is True
        assert response.uid == "abc"
        assert response.audit_annotations["name"] == "add_label"

    @pytest.mark.asyncio
    async def test_extension_annotation_is_kept(self):
        def named(manager, pod, request):
            response = AdmissionResponse.allowed_response()
            response.audit_annotations["name"] = "custom"
            response.audit_annotations["mutated"] = "no"
            return response

        response = await DefaultMutatingWebhook(FunctionExtension(named)).handle(
            AdmissionRequest()
        )
        assert response.audit_annotations == {"name": "custom", "mutated": "no"}

    @pytest.mark.asyncio
    async def test_undecodable_object_is_denied(self, test_extension):
        webhook = DefaultMutatingWebhook(test_extension)

        response = await webhook.handle(
            AdmissionRequest(uid="1", object={"apiVersion": "v1", "kind": "Secret"})
        )

        assert response.allowed is False
        assert response.result.code == 400
        assert response.audit_annotations["error"]
        assert response.audit_annotations["name"] == "test"
        assert test_extension.pods == []

    @pytest.mark.asyncio
    async def test_extension_error_is_denied(self):
        def broken(manager, pod, request):
            raise RuntimeError("boom")

        response = await DefaultMutatingWebhook(
            FunctionExtension(broken, name="broken")
        ).handle(AdmissionRequest())

        assert response.allowed is False
        assert response.result.code == 500
        assert response.audit_annotations == {"error": "boom", "name": "broken"}

    @pytest.mark.asyncio
    async def test_invalid_extension_result_is_denied(self):
        response = await DefaultMutatingWebhook(
            FunctionExtension(lambda m, p, r: {"allowed": True}, name="dict")
        ).handle(AdmissionRequest())

        assert response.allowed is False
        assert "AdmissionResponse" in response.audit_annotations["error"]

    @pytest.mark.asyncio
    async def test_denial_is_forwarded(self):
        def deny(manager, pod, request):
            return AdmissionResponse.denied("no")

        response = await DefaultMutatingWebhook(FunctionExtension(deny)).handle(
            AdmissionRequest(object=APP_POD)
        )

        assert response.allowed is False
        assert response.result.message == "no"
        assert response.audit_annotations["name"] == "deny"


class TestEiriniAppFilter:
    """Only Eirini application pods reach the extension once registered."""

    @pytest.mark.asyncio
    async def test_non_app_pods_are_allowed_untouched(self, test_extension):
        webhook, _ = registered_webhook(test_extension)

        response = await webhook.handle(
            AdmissionRequest(object={"apiVersion": "v1", "kind": "Pod"})
        )

        assert response.allowed is True
        assert response.patches == []
        assert response.audit_annotations["name"] == "test"
        assert test_extension.pods == []

    @pytest.mark.asyncio
    async def test_app_pods_reach_the_extension(self, test_extension):
        webhook, _ = registered_webhook(test_extension)

        await webhook.handle(AdmissionRequest(object=APP_POD))

        assert [pod.metadata.name for pod in test_extension.pods] == ["app-0"]

    @pytest.mark.asyncio
    async def test_filter_disabled(self, test_extension):
        webhook, _ = registered_webhook(test_extension, filter_eirini_apps=False)

        await webhook.handle(AdmissionRequest(object={"apiVersion": "v1", "kind": "Pod"}))

        assert len(test_extension.pods) == 1

    def test_is_eirini_app(self):
        assert is_eirini_app(
            client.V1Pod(metadata=client.V1ObjectMeta(labels={"source_type": "APP"}))
        )
        assert not is_eirini_app(client.V1Pod())
        assert not is_eirini_app(
            client.V1Pod(metadata=client.V1ObjectMeta(labels={"source_type": "STG"}))
        )


class TestPatchResponseFromPod:
    """Patches computed from the mutated pod."""

    @pytest.mark.asyncio
    async def test_extension_patch_reaches_response(self):
        async def add_env(manager, pod, request):
            pod.metadata.labels["mutated"] = "true"
            return patch_response_from_pod(request, pod)

        response = await DefaultMutatingWebhook(FunctionExtension(add_env)).handle(
            AdmissionRequest(object=APP_POD)
        )

        assert response.allowed is True
        assert response.patches == [
            {"op": "add", "path": "/metadata/labels/mutated", "value": "true"}
        ]

    def test_unchanged_pod_has_no_patches(self):
        request = AdmissionRequest(object=APP_POD)
        pod = default_scheme().decode_pod(request.object)

        assert patch_response_from_pod(request, pod).patches == []
