"""Well-known names shared by the operator and the objects it manages."""

OPERATOR_GROUP = "gateway-operator.konghq.com"
KONNECT_GROUP = "konnect.konghq.com"

LABEL_PREFIX = "gateway-operator.konghq.com"

MANAGED_BY_LABEL = f"{LABEL_PREFIX}/managed-by"
MANAGED_BY_VALUE = "gateway-operator"
OWNER_KIND_LABEL = f"{LABEL_PREFIX}/owner-kind"
OWNED_BY_NAMESPACE_LABEL = f"{LABEL_PREFIX}/owned-by-namespace"
OWNED_BY_NAME_LABEL = f"{LABEL_PREFIX}/owned-by-name"
OWNED_BY_UID_LABEL = f"{LABEL_PREFIX}/owned-by-uid"

SPEC_HASH_ANNOTATION = f"{LABEL_PREFIX}/spec-hash"

# Secrets
SECRET_USAGE_LABEL = f"{LABEL_PREFIX}/secret-usage"
SECRET_USAGE_ADMIN_MTLS = "admin-mtls"
SECRET_USAGE_WEBHOOK = "webhook"
SECRET_USAGE_CLIENT_AUTH = "client-auth"
SECRET_PROVISIONING_LABEL = f"{LABEL_PREFIX}/secret-provisioning"
SECRET_PROVISIONING_AUTOMATIC = "automatic"

# Services
SERVICE_KIND_LABEL = f"{LABEL_PREFIX}/service-kind"
SERVICE_KIND_WEBHOOK = "webhook"
SERVICE_KIND_ADMIN = "admin"
SERVICE_KIND_INGRESS = "ingress"

APP_LABEL = "app"

# Containers
CONTROLPLANE_CONTAINER_NAME = "controller"
DATAPLANE_CONTAINER_NAME = "proxy"

CONTROLPLANE_ADMISSION_WEBHOOK_PORT = 8080
CONTROLPLANE_ADMISSION_WEBHOOK_ENV = "CONTROLLER_ADMISSION_WEBHOOK_LISTEN"
CONTROLPLANE_PUBLISH_SERVICE_ENV = "CONTROLLER_PUBLISH_SERVICE"
CONTROLPLANE_WATCH_NAMESPACE_ENV = "CONTROLLER_WATCH_NAMESPACE"

DATAPLANE_ADMIN_PORT = 8444
DATAPLANE_PROXY_PORT = 8000
DATAPLANE_PROXY_SSL_PORT = 8443

CLUSTER_CERT_MOUNT_PATH = "/var/cluster-certificate"
ADMISSION_WEBHOOK_CERT_MOUNT_PATH = "/admission-webhook"
KONNECT_CERT_MOUNT_PATH = "/etc/secrets/kong-cluster-cert"

# Conditions
CONDITION_PROVISIONED = "Provisioned"
REASON_PROVISIONED = "Provisioned"
REASON_PODS_NOT_READY = "PodsNotReady"
REASON_NO_DATAPLANE = "NoDataPlane"

CONDITION_WATCH_NAMESPACE_GRANT_VALID = "WatchNamespaceGrantValid"
REASON_GRANT_VALID = "Valid"
REASON_GRANT_MISSING = "GrantMissing"

CONDITION_CONTROLPLANE_REF_VALID = "ControlPlaneRefValid"
REASON_REF_VALID = "Valid"
REASON_REF_INVALID = "Invalid"

CONDITION_KONNECT_EXTENSION_APPLIED = "KonnectExtensionApplied"
REASON_EXTENSION_APPLIED = "KonnectExtensionApplied"
REASON_EXTENSION_NOT_FOUND = "ExtensionNotFound"
REASON_EXTENSION_NOT_READY = "ExtensionNotReady"

CONDITION_CERTIFICATE_PROVISIONED = "DataPlaneCertificateProvisioned"
REASON_CERTIFICATE_PROVISIONED = "Provisioned"
REASON_SECRET_NOT_FOUND = "SecretNotFound"
REASON_CA_SECRET_MISSING = "CASecretMissing"

CONDITION_READY = "Ready"
REASON_READY = "Ready"
REASON_NOT_READY = "NotReady"

CONDITION_PROGRAMMED = "Programmed"

# Konnect cluster types
CLUSTER_TYPE_CONTROL_PLANE = "ControlPlane"
CLUSTER_TYPE_K8S_INGRESS_CONTROLLER = "K8SIngressController"
