"""Desired children of a DataPlane."""

from gatewayop.consts import (
    APP_LABEL,
    DATAPLANE_ADMIN_PORT,
    DATAPLANE_CONTAINER_NAME,
    DATAPLANE_PROXY_PORT,
    DATAPLANE_PROXY_SSL_PORT,
    KONNECT_CERT_MOUNT_PATH,
    SERVICE_KIND_ADMIN,
    SERVICE_KIND_INGRESS,
    SERVICE_KIND_LABEL,
)
from gatewayop.errors import InvariantViolation
from gatewayop.resources.ownership import generate_name, set_owner
from gatewayop.resources.podtemplate import (
    get_container,
    merge_pod_template,
    normalize_resources,
)
from gatewayop.resources.templates import render_manifest

DEFAULT_INGRESS_PORTS = [
    {"name": "http", "port": 80, "targetPort": DATAPLANE_PROXY_PORT},
    {"name": "https", "port": 443, "targetPort": DATAPLANE_PROXY_SSL_PORT},
]


def app_label(dp):
    return f"dataplane-{dp['metadata']['name']}"


def _strip_scheme(endpoint):
    return endpoint.split("://", 1)[-1]


def _env(konnect):
    env = {
        "KONG_DATABASE": "off",
        "KONG_ADMIN_LISTEN": f"0.0.0.0:{DATAPLANE_ADMIN_PORT} ssl reuseport backlog=16384",
        "KONG_PROXY_LISTEN": (
            f"0.0.0.0:{DATAPLANE_PROXY_PORT} reuseport backlog=16384, "
            f"0.0.0.0:{DATAPLANE_PROXY_SSL_PORT} http2 ssl reuseport backlog=16384"
        ),
        "KONG_STATUS_LISTEN": "0.0.0.0:8100",
        "KONG_PORT_MAPS": f"80:{DATAPLANE_PROXY_PORT}, 443:{DATAPLANE_PROXY_SSL_PORT}",
        "KONG_NGINX_WORKER_PROCESSES": "2",
        "KONG_PROXY_ACCESS_LOG": "/dev/stdout",
        "KONG_PROXY_ERROR_LOG": "/dev/stderr",
        "KONG_ADMIN_ERROR_LOG": "/dev/stderr",
    }

    if konnect:
        env.update(
            {
                "KONG_ROLE": "data_plane",
                "KONG_CLUSTER_MTLS": "pki",
                "KONG_KONNECT_MODE": "on",
                "KONG_VITALS": "off",
                "KONG_LUA_SSL_TRUSTED_CERTIFICATE": "system",
                "KONG_CLUSTER_CERT": f"{KONNECT_CERT_MOUNT_PATH}/tls.crt",
                "KONG_CLUSTER_CERT_KEY": f"{KONNECT_CERT_MOUNT_PATH}/tls.key",
            }
        )
        endpoints = konnect.endpoints
        if endpoints and endpoints.controlPlaneEndpoint:
            control_plane = _strip_scheme(endpoints.controlPlaneEndpoint)
            env["KONG_CLUSTER_CONTROL_PLANE"] = f"{control_plane}:443"
            env["KONG_CLUSTER_SERVER_NAME"] = control_plane
        if endpoints and endpoints.telemetryEndpoint:
            telemetry = _strip_scheme(endpoints.telemetryEndpoint)
            env["KONG_CLUSTER_TELEMETRY_ENDPOINT"] = f"{telemetry}:443"
            env["KONG_CLUSTER_TELEMETRY_SERVER_NAME"] = telemetry

    return [{"name": name, "value": value} for name, value in sorted(env.items())]


def generate_dataplane_deployment(dp, spec, image, konnect=None):
    """ Build the desired DataPlane Deployment.

    Args:
        dp: DataPlane object
        spec: Parsed DataPlaneSpec
        image: Resolved proxy image
        konnect: Applied KonnectExtension, if any
    """
    deployment = render_manifest(
        "dataplane-deployment.yaml.j2",
        generate_name=generate_name(dp),
        namespace=dp["metadata"]["namespace"],
        labels={APP_LABEL: app_label(dp)},
        app=app_label(dp),
        replicas=spec.deployment.replicas,
        image=image,
        env=_env(konnect),
        proxy_port=DATAPLANE_PROXY_PORT,
        proxy_ssl_port=DATAPLANE_PROXY_SSL_PORT,
        admin_port=DATAPLANE_ADMIN_PORT,
        konnect_secret_name=konnect.secret_name if konnect else None,
        konnect_cert_path=KONNECT_CERT_MOUNT_PATH,
    )

    template = deployment["spec"]["template"]
    if spec.deployment.podTemplateSpec:
        template = merge_pod_template(template, spec.deployment.podTemplateSpec)

    container = get_container(template, DATAPLANE_CONTAINER_NAME)
    if container is None:
        raise InvariantViolation(
            f"container {DATAPLANE_CONTAINER_NAME} missing from generated pod template"
        )
    container["image"] = image

    template.setdefault("metadata", {}).setdefault("labels", {})[APP_LABEL] = app_label(dp)
    deployment["spec"]["template"] = normalize_resources(template)
    return set_owner(deployment, dp)


def generate_dataplane_admin_service(dp):
    """Headless Service the ControlPlane uses to reach every proxy's admin API."""
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "generateName": generate_name(dp, "admin"),
            "namespace": dp["metadata"]["namespace"],
            "labels": {SERVICE_KIND_LABEL: SERVICE_KIND_ADMIN},
        },
        "spec": {
            "type": "ClusterIP",
            "clusterIP": "None",
            "selector": {APP_LABEL: app_label(dp)},
            "ports": [
                {
                    "name": "admin",
                    "protocol": "TCP",
                    "port": DATAPLANE_ADMIN_PORT,
                    "targetPort": DATAPLANE_ADMIN_PORT,
                }
            ],
            "publishNotReadyAddresses": True,
        },
    }
    return set_owner(service, dp)


def generate_dataplane_ingress_service(dp, spec):
    ingress = spec.network.services.ingress
    if ingress.ports:
        ports = [
            {
                "name": port.name,
                "protocol": "TCP",
                "port": port.port,
                "targetPort": port.targetPort or DATAPLANE_PROXY_PORT,
            }
            for port in ingress.ports
        ]
    else:
        ports = [dict(port, protocol="TCP") for port in DEFAULT_INGRESS_PORTS]

    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "generateName": generate_name(dp, "ingress"),
            "namespace": dp["metadata"]["namespace"],
            "labels": {SERVICE_KIND_LABEL: SERVICE_KIND_INGRESS},
            "annotations": dict(ingress.annotations),
        },
        "spec": {
            "type": ingress.type,
            "selector": {APP_LABEL: app_label(dp)},
            "ports": ports,
        },
    }
    return set_owner(service, dp)


def generate_dataplane_services(dp, spec):
    """Return the (admin, ingress) Services of a DataPlane."""
    return generate_dataplane_admin_service(dp), generate_dataplane_ingress_service(dp, spec)
