"""
Type registry used to decode typed Kubernetes objects.

A ``Scheme`` maps ``(apiVersion, kind)`` pairs to kubernetes client model
names. It is owned by the manager and handed explicitly to every component
that decodes objects from admission requests.
"""

import json
import logging
from typing import Any

from kubernetes import client

from eirinix.errors import DecodeError

logger = logging.getLogger(__name__)


class Scheme:
    """Registry of the object types eirinix knows how to decode."""

    def __init__(self, api_client: client.ApiClient | None = None):
        self._types: dict[tuple[str, str], str] = {}
        self._api_client = api_client

    @property
    def api_client(self) -> client.ApiClient:
        # Only used for (de)serialization, never for requests
        if self._api_client is None:
            self._api_client = client.ApiClient()
        return self._api_client

    def add_known_type(self, api_version: str, kind: str, model_name: str) -> None:
        """Register the kubernetes client model used for ``apiVersion/kind``."""
        self._types[(api_version, kind)] = model_name

    def recognizes(self, api_version: str, kind: str) -> bool:
        return (api_version, kind) in self._types

    def decode(self, raw: Any, api_version: str, kind: str) -> Any:
        """
        Decode a raw object into its registered kubernetes client model.

        An absent object decodes to an empty model. ``apiVersion`` and
        ``kind`` of the raw object, when present, must match the requested
        type.

        Raises:
            DecodeError: If the type is unknown or the object is malformed
        """
        if not self.recognizes(api_version, kind):
            raise DecodeError(f"no kind {kind} is registered for version {api_version}")

        if raw is None:
            raw = {}
        if isinstance(raw, (bytes, str)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise DecodeError(f"object is not valid JSON: {e}", cause=e) from e
        if not isinstance(raw, dict):
            raise DecodeError(
                f"expected a JSON object for {kind}, got {type(raw).__name__}"
            )

        raw_version = raw.get("apiVersion")
        raw_kind = raw.get("kind")
        if raw_version and raw_version != api_version:
            raise DecodeError(f"expected apiVersion {api_version}, got {raw_version}")
        if raw_kind and raw_kind != kind:
            raise DecodeError(f"expected kind {kind}, got {raw_kind}")

        model_name = self._types[(api_version, kind)]
        try:
            return self.api_client.deserialize(
                json.dumps(raw), model_name, "application/json"
            )
        except ValueError as e:
            raise DecodeError(f"cannot decode {kind}: {e}", cause=e) from e

    def decode_pod(self, raw: Any) -> client.V1Pod:
        return self.decode(raw, "v1", "Pod")

    def encode(self, obj: Any) -> Any:
        """Serialize a kubernetes client model to its JSON-compatible form."""
        return self.api_client.sanitize_for_serialization(obj)


def default_scheme(api_client: client.ApiClient | None = None) -> Scheme:
    """Scheme with the core types extensions receive."""
    scheme = Scheme(api_client)
    scheme.add_known_type("v1", "Pod", "V1Pod")
    return scheme
