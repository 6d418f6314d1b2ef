"""
Kubernetes connection handling and the namespace-scoped resource manager.

Key functionality:
- Loading a kubeconfig file or the in-cluster configuration
- Validating that the API server is reachable
- Grouping the API clients the manager needs for one namespace
"""

import logging

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from eirinix.errors import KubeConnectionError
from eirinix.scheme import Scheme

logger = logging.getLogger(__name__)


def load_kube_configuration(kube_config: str | None = None) -> client.Configuration:
    """
    Load client configuration without touching the library-wide default.

    Args:
        kube_config: Path to a kubeconfig file. When omitted the in-cluster
            configuration is tried first, then the default kubeconfig.

    Returns:
        Client configuration

    Raises:
        KubeConnectionError: If no configuration can be loaded
    """
    configuration = client.Configuration()
    try:
        if kube_config:
            config.load_kube_config(
                config_file=kube_config, client_configuration=configuration
            )
            logger.debug(f"Loaded kubeconfig from {kube_config}")
            return configuration

        try:
            config.load_incluster_config(client_configuration=configuration)
            logger.debug("Loaded in-cluster Kubernetes configuration")
        except config.ConfigException:
            config.load_kube_config(client_configuration=configuration)
            logger.debug("Loaded kubeconfig from local environment")
    except (config.ConfigException, OSError) as e:
        raise KubeConnectionError(
            f"Failed to load Kubernetes configuration: {e}", cause=e
        ) from e

    return configuration


def check_connection(api_client: client.ApiClient) -> str:
    """
    Verify that the API server answers.

    Returns:
        The git version reported by the API server

    Raises:
        KubeConnectionError: If the API server cannot be reached
    """
    try:
        version = client.VersionApi(api_client).get_code()
    except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
        raise KubeConnectionError(
            f"Kubernetes API server is not reachable: {e}", cause=e
        ) from e
    git_version = getattr(version, "git_version", "unknown")
    logger.info(f"Connected to Kubernetes API server {git_version}")
    return git_version


def new_kube_connection(kube_config: str | None = None) -> client.ApiClient:
    """Load configuration, open an API client and validate it."""
    api_client = client.ApiClient(load_kube_configuration(kube_config))
    check_connection(api_client)
    return api_client


class KubeManager:
    """Kubernetes API clients scoped to the manager namespace."""

    def __init__(
        self, api_client: client.ApiClient, namespace: str, scheme: Scheme
    ):
        """
        Initialize the resource manager.

        Args:
            api_client: Connected Kubernetes API client
            namespace: Namespace the manager operates in
            scheme: Type registry used to decode objects
        """
        self.api_client = api_client
        self.namespace = namespace
        self.scheme = scheme
        self._core_v1: client.CoreV1Api | None = None
        self._admission_v1: client.AdmissionregistrationV1Api | None = None

    @property
    def core_v1(self) -> client.CoreV1Api:
        """Get CoreV1Api client."""
        if self._core_v1 is None:
            self._core_v1 = client.CoreV1Api(self.api_client)
        return self._core_v1

    @property
    def admission_v1(self) -> client.AdmissionregistrationV1Api:
        """Get AdmissionregistrationV1Api client."""
        if self._admission_v1 is None:
            self._admission_v1 = client.AdmissionregistrationV1Api(self.api_client)
        return self._admission_v1
