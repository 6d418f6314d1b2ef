"""
Mutating webhook adapter generated for every extension.

The adapter implements the admission contract on behalf of an extension:
it decodes the Pod from the admission request, hands it to the extension
and makes sure every decision is attributed to the extension through an
audit annotation. Decode failures and extension errors become deny
responses so one bad request cannot break the server.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kubernetes import client

from eirinix.constants import (
    ADMISSION_REVIEW_VERSIONS,
    EIRINI_APP_LABEL_KEY,
    EIRINI_APP_LABEL_VALUE,
    ERROR_ANNOTATION,
    EXTENSION_NAME_ANNOTATION,
    WEBHOOK_NAME_TEMPLATE,
)
from eirinix.errors import DecodeError, RegistrationError
from eirinix.extension import Extension, call_extension, extension_name
from eirinix.models.admission import AdmissionRequest, AdmissionResponse
from eirinix.models.options import WebhookOptions
from eirinix.observability.logging import set_correlation_id
from eirinix.observability.metrics import DECODE_ERRORS_TOTAL, record_admission
from eirinix.scheme import Scheme, default_scheme

if TYPE_CHECKING:
    from eirinix.manager import DefaultExtensionManager

logger = logging.getLogger(__name__)


def is_eirini_app(pod: client.V1Pod) -> bool:
    """Eirini application pods are labelled ``source_type=APP``."""
    labels = (pod.metadata.labels if pod.metadata else None) or {}
    return labels.get(EIRINI_APP_LABEL_KEY) == EIRINI_APP_LABEL_VALUE


def patch_response_from_pod(
    request: AdmissionRequest, pod: client.V1Pod, scheme: Scheme | None = None
) -> AdmissionResponse:
    """
    Build a patch response turning the requested object into ``pod``.

    Args:
        request: The admission request the pod was decoded from
        pod: The pod as the extension wants it
        scheme: Scheme used to serialize the pod

    Returns:
        Allowed response carrying the JSON patch operations
    """
    scheme = scheme or default_scheme()
    original = request.object if isinstance(request.object, dict) else {}
    return AdmissionResponse.from_raw_diff(original, scheme.encode(pod))


@dataclass
class AdmissionWebhook:
    """A registered webhook, rendered into the cluster configuration object."""

    name: str
    path: str
    url: str
    failure_policy: str
    operations: list[str]
    namespace_selector: dict[str, str] = field(default_factory=dict)

    def to_kubernetes(self, ca_bundle: str | None) -> client.V1MutatingWebhook:
        """Render the webhook entry with the given base64 CA bundle."""
        selector = (
            client.V1LabelSelector(match_labels=dict(self.namespace_selector))
            if self.namespace_selector
            else None
        )
        return client.V1MutatingWebhook(
            name=self.name,
            admission_review_versions=list(ADMISSION_REVIEW_VERSIONS),
            side_effects="None",
            failure_policy=self.failure_policy,
            client_config=client.AdmissionregistrationV1WebhookClientConfig(
                url=self.url, ca_bundle=ca_bundle
            ),
            namespace_selector=selector,
            rules=[
                client.V1RuleWithOperations(
                    api_groups=[""],
                    api_versions=["v1"],
                    operations=list(self.operations),
                    resources=["pods"],
                    scope="Namespaced",
                )
            ],
        )


class DefaultMutatingWebhook:
    """Admission adapter wrapping one extension."""

    def __init__(
        self,
        extension: Extension,
        manager: DefaultExtensionManager | None = None,
        scheme: Scheme | None = None,
    ):
        """
        Initialize the adapter.

        Args:
            extension: Extension receiving the decoded pods
            manager: Extension manager handed to the extension
            scheme: Scheme used to decode pods
        """
        self.extension = extension
        self.manager = manager
        self.scheme = scheme or default_scheme()
        self.extension_name = extension_name(extension)
        self.options: WebhookOptions | None = None
        self.id = ""
        self.name = ""
        self.path = ""

    @property
    def filter_eirini_apps(self) -> bool:
        return self.options is not None and self.options.manager_options.filter_eirini_apps

    def _annotate(self, response: AdmissionResponse) -> AdmissionResponse:
        response.audit_annotations.setdefault(
            EXTENSION_NAME_ANNOTATION, self.extension_name
        )
        return response

    async def handle(self, request: AdmissionRequest) -> AdmissionResponse:
        """
        Produce the admission decision for ``request``.

        Decode failures and extension errors are turned into deny responses
        annotated with the error; the extension is not called when the pod
        cannot be decoded.
        """
        if request.uid:
            set_correlation_id(request.uid)
        start_time = time.time()
        log_extra = {
            "extension": self.extension_name,
            "webhook_id": self.id,
            "namespace": request.namespace,
            "operation": request.operation,
            "uid": request.uid,
        }

        try:
            pod = self.scheme.decode_pod(request.object)
        except DecodeError as e:
            DECODE_ERRORS_TOTAL.labels(extension=self.extension_name).inc()
            logger.warning(
                f"Rejecting request {request.uid}: {e}",
                extra={**log_extra, "error_type": type(e).__name__},
            )
            response = AdmissionResponse.errored(400, e)
            response.audit_annotations[ERROR_ANNOTATION] = str(e)
            return self._finish(request, response, "errored", start_time)

        if self.filter_eirini_apps and not is_eirini_app(pod):
            logger.debug(
                "Skipping pod that is not an Eirini app", extra=log_extra
            )
            response = AdmissionResponse.allowed_response()
            return self._finish(request, response, "allowed", start_time)

        try:
            response = await call_extension(self.extension, self.manager, pod, request)
            if not isinstance(response, AdmissionResponse):
                raise TypeError(
                    f"extension returned {type(response).__name__}, "
                    "expected AdmissionResponse"
                )
        except Exception as e:
            logger.error(
                f"Extension {self.extension_name} failed on request {request.uid}: {e}",
                extra={**log_extra, "error_type": type(e).__name__},
                exc_info=True,
            )
            response = AdmissionResponse.errored(500, e)
            response.audit_annotations[ERROR_ANNOTATION] = str(e)
            return self._finish(request, response, "errored", start_time)

        if not response.allowed:
            result = "denied"
        elif response.patches:
            result = "patched"
        else:
            result = "allowed"
        return self._finish(request, response, result, start_time)

    def _finish(
        self,
        request: AdmissionRequest,
        response: AdmissionResponse,
        result: str,
        start_time: float,
    ) -> AdmissionResponse:
        if not response.uid:
            response.uid = request.uid
        self._annotate(response)
        duration = time.time() - start_time
        record_admission(self.extension_name, self.id, result, duration)
        logger.info(
            f"Admission {result} by extension {self.extension_name}",
            extra={
                "extension": self.extension_name,
                "webhook_id": self.id,
                "uid": request.uid,
                "allowed": response.allowed,
                "duration": duration,
            },
        )
        return response

    def register_admission_webhook(self, options: WebhookOptions) -> AdmissionWebhook:
        """
        Register the adapter path with the webhook server.

        Args:
            options: Registration parameters from the manager

        Returns:
            The webhook entry to commit to the cluster configuration

        Raises:
            RegistrationError: If the options lack a manager or webhook server
        """
        if options.manager is None:
            raise RegistrationError(
                f"Cannot register webhook {options.id!r}: no Kubernetes manager"
            )
        if options.webhook_server is None:
            raise RegistrationError(
                f"Cannot register webhook {options.id!r}: no webhook server"
            )

        manager_options = options.manager_options
        name = WEBHOOK_NAME_TEMPLATE.format(
            id=options.id, fingerprint=manager_options.operator_fingerprint
        )
        path = f"/{name}"

        options.webhook_server.register(path, self)

        self.options = options
        self.id = options.id
        self.name = name
        self.path = path

        logger.info(
            f"Registered extension {self.extension_name} as webhook {name} on {path}"
        )

        return AdmissionWebhook(
            name=name,
            path=path,
            url=manager_options.webhook_url(path),
            failure_policy=manager_options.failure_policy,
            operations=list(manager_options.operations),
            namespace_selector={
                manager_options.namespace_label: manager_options.namespace
            },
        )
