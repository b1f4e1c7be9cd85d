"""
Constants used throughout the muting webhook.

This module defines all constant values used by the webhook including:
- Certificate subject and key sizes
- Admission endpoint paths and review versions
- Intercepted resource coordinates
- Default configuration values
"""

# Certificate identity
ORGANIZATION = "muting.io"
ROOT_KEY_SIZE = 4096
LEAF_KEY_SIZE = 2048
CERTIFICATE_VALIDITY_DAYS = 365
CERTIFICATE_SERIAL = 1

# PEM roles and conventional filenames
PEM_ROLE_KEY = "key"
PEM_ROLE_CERTIFICATE = "certificate"
ROOT_FILENAMES = {PEM_ROLE_KEY: "ca.key", PEM_ROLE_CERTIFICATE: "ca.crt"}
LEAF_FILENAMES = {PEM_ROLE_KEY: "tls.key", PEM_ROLE_CERTIFICATE: "tls.crt"}

# HTTP endpoints
MUTATE_PATH = "/mutate"
HEARTBEAT_PATH = "/status"
METRICS_PATH = "/metrics"

# Admission review wire format
ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_KIND = "AdmissionReview"
ADMISSION_REVIEW_VERSIONS = ["v1"]
PATCH_TYPE_JSON = "JSONPatch"

# Intercepted resource
TARGET_API_GROUP = "networking.k8s.io"
TARGET_API_VERSION = "v1"
TARGET_KIND = "Ingress"
TARGET_RESOURCE = "ingresses"
TARGET_OPERATIONS = ["CREATE", "UPDATE"]

# Webhook declaration
SERVICE_PORT = 443
NAMESPACE_SELECTOR_VALUE = "enabled"
MANAGED_BY_LABEL_KEY = "app.kubernetes.io/managed-by"
MANAGED_BY_LABEL_VALUE = "muting"
SIDE_EFFECTS_NONE = "None"

# Transform failure policies
TRANSFORM_POLICY_IGNORE = "ignore"
TRANSFORM_POLICY_REJECT = "reject"

# Transform rules
DEFAULT_TRANSFORMS_KEY = "transforms.yaml"
SUFFIX_SEPARATOR = "."

# Server lifecycle (in seconds)
DEFAULT_DRAIN_TIMEOUT = 30.0
HANDLER_CANCEL_TIMEOUT = 1.0

# Error message templates
ERROR_CONFIGMAP_KEY_MISSING = "ConfigMap '{}' in namespace '{}' has no key '{}'"
ERROR_CONFIGMAP_NOT_FOUND = "ConfigMap '{}' not found in namespace '{}'"
ERROR_INVALID_DNS_NAME = "'{}' is not a usable DNS name"
