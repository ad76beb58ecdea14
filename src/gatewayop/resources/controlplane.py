"""Desired children of a ControlPlane."""

from gatewayop.consts import (
    ADMISSION_WEBHOOK_CERT_MOUNT_PATH,
    APP_LABEL,
    CLUSTER_CERT_MOUNT_PATH,
    CONTROLPLANE_ADMISSION_WEBHOOK_ENV,
    CONTROLPLANE_ADMISSION_WEBHOOK_PORT,
    CONTROLPLANE_CONTAINER_NAME,
    CONTROLPLANE_PUBLISH_SERVICE_ENV,
    CONTROLPLANE_WATCH_NAMESPACE_ENV,
    KONNECT_CERT_MOUNT_PATH,
    SERVICE_KIND_LABEL,
    SERVICE_KIND_WEBHOOK,
)
from gatewayop.errors import InvariantViolation
from gatewayop.resources.ownership import generate_name, owner_labels, set_owner
from gatewayop.resources.podtemplate import (
    env_value,
    get_container,
    merge_pod_template,
    normalize_resources,
    reject_env,
)
from gatewayop.resources.templates import render_manifest

# Replicas of a ControlPlane Deployment while no DataPlane is set.
REPLICAS_WHEN_NO_DATAPLANE = 0


def app_label(cp):
    return f"controlplane-{cp['metadata']['name']}"


def is_admission_webhook_enabled(spec, config):
    """Webhook is on when enabled operator-wide and not switched off on the container."""
    if not config.enable_validating_webhook:
        return False
    container = get_container(spec.deployment.podTemplateSpec, CONTROLPLANE_CONTAINER_NAME)
    return env_value(container, CONTROLPLANE_ADMISSION_WEBHOOK_ENV) != "off"


def desired_replicas(spec):
    """Dormant (0 replicas) until a DataPlane is set, then the declared count."""
    if not spec.dataplane:
        return REPLICAS_WHEN_NO_DATAPLANE
    return spec.deployment.replicas


def _env(cp, dataplane_services, watch_namespaces, webhook_secret_name, konnect):
    namespace = cp["metadata"]["namespace"]
    env = [
        {
            "name": "POD_NAME",
            "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "metadata.name"}},
        },
        {
            "name": "POD_NAMESPACE",
            "valueFrom": {
                "fieldRef": {"apiVersion": "v1", "fieldPath": "metadata.namespace"}
            },
        },
        {"name": "CONTROLLER_ELECTION_ID", "value": f"{cp['metadata']['name']}.konghq.com"},
        {
            "name": "CONTROLLER_KONG_ADMIN_TLS_CLIENT_CERT_FILE",
            "value": f"{CLUSTER_CERT_MOUNT_PATH}/tls.crt",
        },
        {
            "name": "CONTROLLER_KONG_ADMIN_TLS_CLIENT_KEY_FILE",
            "value": f"{CLUSTER_CERT_MOUNT_PATH}/tls.key",
        },
        {
            "name": "CONTROLLER_KONG_ADMIN_CA_CERT_FILE",
            "value": f"{CLUSTER_CERT_MOUNT_PATH}/ca.crt",
        },
    ]

    if dataplane_services:
        admin_service, ingress_service = dataplane_services
        if admin_service:
            env.append(
                {"name": "CONTROLLER_KONG_ADMIN_SVC", "value": f"{namespace}/{admin_service}"}
            )
        if ingress_service:
            env.append(
                {
                    "name": CONTROLPLANE_PUBLISH_SERVICE_ENV,
                    "value": f"{namespace}/{ingress_service}",
                }
            )

    if watch_namespaces is not None:
        env.append(
            {"name": CONTROLPLANE_WATCH_NAMESPACE_ENV, "value": ",".join(watch_namespaces)}
        )

    if webhook_secret_name:
        env.extend(
            [
                {
                    "name": CONTROLPLANE_ADMISSION_WEBHOOK_ENV,
                    "value": f"0.0.0.0:{CONTROLPLANE_ADMISSION_WEBHOOK_PORT}",
                },
                {
                    "name": "CONTROLLER_ADMISSION_WEBHOOK_CERT_FILE",
                    "value": f"{ADMISSION_WEBHOOK_CERT_MOUNT_PATH}/tls.crt",
                },
                {
                    "name": "CONTROLLER_ADMISSION_WEBHOOK_KEY_FILE",
                    "value": f"{ADMISSION_WEBHOOK_CERT_MOUNT_PATH}/tls.key",
                },
            ]
        )

    if konnect:
        env.extend(
            [
                {"name": "CONTROLLER_KONNECT_SYNC_ENABLED", "value": "true"},
                {
                    "name": "CONTROLLER_KONNECT_CONTROL_PLANE_ID",
                    "value": konnect.control_plane_id or "",
                },
                {
                    "name": "CONTROLLER_KONNECT_TLS_CLIENT_CERT_FILE",
                    "value": f"{KONNECT_CERT_MOUNT_PATH}/tls.crt",
                },
                {
                    "name": "CONTROLLER_KONNECT_TLS_CLIENT_KEY_FILE",
                    "value": f"{KONNECT_CERT_MOUNT_PATH}/tls.key",
                },
            ]
        )
    return env


def generate_controlplane_deployment(
    cp,
    spec,
    image,
    service_account_name,
    admin_mtls_secret_name,
    webhook_secret_name=None,
    watch_namespaces=None,
    dataplane_services=None,
    konnect=None,
):
    """ Build the desired ControlPlane Deployment.

    Args:
        cp: ControlPlane object
        spec: Parsed ControlPlaneSpec
        image: Resolved controller image
        service_account_name: ServiceAccount the pods run as
        admin_mtls_secret_name: Secret holding the admin API client certificate
        webhook_secret_name: Secret holding the webhook serving certificate, if enabled
        watch_namespaces: Validated namespaces to watch, None for all
        dataplane_services: (admin service, ingress service) names of the DataPlane
        konnect: Applied KonnectExtension, if any
    """
    deployment = render_manifest(
        "controlplane-deployment.yaml.j2",
        generate_name=generate_name(cp),
        namespace=cp["metadata"]["namespace"],
        labels={APP_LABEL: app_label(cp)},
        app=app_label(cp),
        replicas=desired_replicas(spec),
        image=image,
        service_account_name=service_account_name,
        env=_env(cp, dataplane_services, watch_namespaces, webhook_secret_name, konnect),
        webhook_port=CONTROLPLANE_ADMISSION_WEBHOOK_PORT,
        admin_mtls_secret_name=admin_mtls_secret_name,
        webhook_secret_name=webhook_secret_name,
        konnect_secret_name=konnect.secret_name if konnect else None,
        cluster_cert_path=CLUSTER_CERT_MOUNT_PATH,
        webhook_cert_path=ADMISSION_WEBHOOK_CERT_MOUNT_PATH,
        konnect_cert_path=KONNECT_CERT_MOUNT_PATH,
    )

    template = deployment["spec"]["template"]
    if spec.deployment.podTemplateSpec:
        template = merge_pod_template(template, spec.deployment.podTemplateSpec)

    container = get_container(template, CONTROLPLANE_CONTAINER_NAME)
    if container is None:
        raise InvariantViolation(
            f"container {CONTROLPLANE_CONTAINER_NAME} missing from generated pod template"
        )
    container["image"] = image
    if not dataplane_services or not dataplane_services[1]:
        reject_env(container, CONTROLPLANE_PUBLISH_SERVICE_ENV)

    # Selector labels must survive the user template.
    template.setdefault("metadata", {}).setdefault("labels", {})[APP_LABEL] = app_label(cp)
    deployment["spec"]["template"] = normalize_resources(template)
    return set_owner(deployment, cp)


def generate_admission_webhook_service(cp):
    labels = {SERVICE_KIND_LABEL: SERVICE_KIND_WEBHOOK}
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "generateName": generate_name(cp, "webhook"),
            "namespace": cp["metadata"]["namespace"],
            "labels": labels,
        },
        "spec": {
            "type": "ClusterIP",
            "selector": {APP_LABEL: app_label(cp)},
            "ports": [
                {
                    "name": "webhook",
                    "protocol": "TCP",
                    "port": 443,
                    "targetPort": CONTROLPLANE_ADMISSION_WEBHOOK_PORT,
                }
            ],
        },
    }
    return set_owner(service, cp)


def generate_validating_webhook_configuration(cp, service_name, ca_bundle):
    """ValidatingWebhookConfiguration pointing at the ControlPlane's webhook Service."""
    if not ca_bundle:
        raise InvariantViolation("ca.crt not found in admission webhook certificate Secret")

    client_config = {
        "service": {
            "namespace": cp["metadata"]["namespace"],
            "name": service_name,
            "port": 443,
        },
        "caBundle": ca_bundle,
    }
    configuration = render_manifest(
        "controlplane-webhook.yaml.j2",
        generate_name=generate_name(cp),
        labels=owner_labels(cp),
        client_config=client_config,
    )
    return set_owner(configuration, cp)
