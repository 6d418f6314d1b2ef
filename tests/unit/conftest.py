"""Shared pytest fixtures for eirinix unit tests."""

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from eirinix.credsgen import InMemoryGenerator
from eirinix.extension import FunctionExtension
from eirinix.kube import KubeManager
from eirinix.models.admission import AdmissionResponse
from eirinix.models.options import ManagerOptions
from eirinix.scheme import default_scheme


class NamedExtension:
    """Extension allowing every pod, recording the pods it received."""

    def __init__(self, name: str):
        self.name = name
        self.pods = []

    async def handle(self, manager, pod, request):
        self.pods.append(pod)
        return AdmissionResponse.allowed_response()


@pytest.fixture
def options(tmp_path):
    return ManagerOptions(
        namespace="eirini",
        host="127.0.0.1",
        port=8443,
        cert_dir=str(tmp_path / "certs"),
    )


@pytest.fixture
def kube_manager():
    """KubeManager whose API clients are mocks.

    The namespace exists without labels, no certificate secret and no
    webhook configuration exist yet.
    """
    manager = KubeManager(api_client=MagicMock(), namespace="eirini", scheme=default_scheme())
    manager._core_v1 = MagicMock()
    manager._admission_v1 = MagicMock()

    manager.core_v1.read_namespace.return_value = client.V1Namespace(
        metadata=client.V1ObjectMeta(name="eirini")
    )
    manager.core_v1.read_namespaced_secret.side_effect = ApiException(status=404)
    manager.admission_v1.read_mutating_webhook_configuration.side_effect = ApiException(
        status=404
    )
    manager.admission_v1.create_mutating_webhook_configuration.side_effect = (
        lambda body: body
    )
    return manager


@pytest.fixture(scope="session")
def generator():
    return InMemoryGenerator()


@pytest.fixture
def test_extension():
    return NamedExtension("test")


@pytest.fixture
def function_extension():
    def add_label(manager, pod, request):
        return AdmissionResponse.allowed_response("labelled")

    return FunctionExtension(add_label)


@pytest.fixture
def make_extension():
    """Factory for named extensions."""
    return NamedExtension
