"""
Constants used throughout eirinix.

This module defines constant values shared by the manager, the webhook
adapters and the certificate lifecycle including:
- Default names derived from the operator fingerprint
- Admission wire format values
- Certificate file names and validity windows
"""

# Operator identification
DEFAULT_OPERATOR_FINGERPRINT = "eirini-x"
DEFAULT_NAMESPACE = "default"
DEFAULT_WEBHOOK_HOST = "localhost"
DEFAULT_WEBHOOK_PORT = 8443

# Name templates (formatted with the operator fingerprint and namespace)
NAMESPACE_LABEL_TEMPLATE = "{fingerprint}-ns"
SETUP_CERTIFICATE_NAME_TEMPLATE = "{fingerprint}-setupcertificate"
WEBHOOK_CONFIG_NAME_TEMPLATE = "{fingerprint}-mutating-hook-{namespace}"
WEBHOOK_NAME_TEMPLATE = "{id}.{fingerprint}.org"
CERT_DIR_TEMPLATE = "{fingerprint}-certs"

# Webhook failure policies accepted by admissionregistration.k8s.io/v1
FAILURE_POLICY_FAIL = "Fail"
FAILURE_POLICY_IGNORE = "Ignore"

# Admission operations that can be routed to extensions
OPERATION_CREATE = "CREATE"
OPERATION_UPDATE = "UPDATE"
DEFAULT_OPERATIONS = (OPERATION_CREATE,)

# Admission wire format
ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_API_VERSION_V1BETA1 = "admission.k8s.io/v1beta1"
ADMISSION_REVIEW_KIND = "AdmissionReview"
ADMISSION_REVIEW_VERSIONS = ["v1", "v1beta1"]
PATCH_TYPE_JSON = "JSONPatch"

# Audit annotation keys set on every admission response
EXTENSION_NAME_ANNOTATION = "name"
ERROR_ANNOTATION = "error"

# Eirini application pods carry this label
EIRINI_APP_LABEL_KEY = "source_type"
EIRINI_APP_LABEL_VALUE = "APP"

# Certificate material
CERT_FILE_NAME = "tls.crt"
KEY_FILE_NAME = "tls.key"
CA_FILE_NAME = "ca.crt"
CERT_SECRET_CERTIFICATE_KEY = "certificate"
CERT_SECRET_PRIVATE_KEY_KEY = "private_key"
CERT_SECRET_CA_KEY = "ca_certificate"
CERT_SECRET_CA_PRIVATE_KEY_KEY = "ca_private_key"
CERT_VALIDITY_DAYS = 365
CERT_RENEWAL_WINDOW_DAYS = 30
CERT_KEY_SIZE = 2048

# Serving
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 60.0
HEALTH_PATH = "/healthz"
METRICS_PATH = "/metrics"
