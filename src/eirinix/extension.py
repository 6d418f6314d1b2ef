"""
The extension capability.

An extension is anything with a ``handle(manager, pod, request)`` method
returning an ``AdmissionResponse``; the method may be a coroutine. Plain
functions are wrapped in ``FunctionExtension``.

Extensions typically return the set of patches between the pod received in
the request and the state they want, see ``patch_response_from_pod``.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kubernetes import client

    from eirinix.manager import DefaultExtensionManager
    from eirinix.models.admission import AdmissionRequest, AdmissionResponse


@runtime_checkable
class Extension(Protocol):
    """
    Protocol every extension satisfies.

    ``handle`` is the entry point of an extension. The manager decodes the
    pod from the admission request before calling it.
    """

    def handle(
        self,
        manager: DefaultExtensionManager,
        pod: client.V1Pod,
        request: AdmissionRequest,
    ) -> Any: ...


@dataclass(frozen=True)
class FunctionExtension:
    """Extension backed by a plain (sync or async) function."""

    handler: Callable[..., Any]
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(
                self, "name", getattr(self.handler, "__name__", "extension")
            )

    def handle(self, manager, pod, request):
        return self.handler(manager, pod, request)


def as_extension(value: Any) -> Extension:
    """Return ``value`` as an extension, wrapping bare callables."""
    if isinstance(value, Extension):
        return value
    if callable(value):
        return FunctionExtension(value)
    raise TypeError(f"{value!r} has no handle() method and is not callable")


def extension_name(extension: Any) -> str:
    """Name used to attribute admission decisions to an extension."""
    name = getattr(extension, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(extension).__name__


async def call_extension(
    extension: Extension,
    manager: DefaultExtensionManager | None,
    pod: client.V1Pod,
    request: AdmissionRequest,
) -> AdmissionResponse:
    """Invoke an extension handler, awaiting it when it is a coroutine."""
    result = extension.handle(manager, pod, request)
    if inspect.isawaitable(result):
        result = await result
    return result
