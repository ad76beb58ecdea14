"""ControlPlane reconciliation.

One pass converges, in order: watch namespace grants, the KonnectExtension,
ServiceAccount, RBAC, the admin mTLS certificate, the admission webhook
Service and certificate, the Deployment and finally the
ValidatingWebhookConfiguration. Status is written once at the end of the
pass, also when the pass fails.
"""

import copy
import logging

from pydantic import ValidationError

from gatewayop.consts import (
    CONDITION_PROVISIONED,
    CONDITION_WATCH_NAMESPACE_GRANT_VALID,
    CONTROLPLANE_CONTAINER_NAME,
    REASON_GRANT_MISSING,
    REASON_GRANT_VALID,
    REASON_NO_DATAPLANE,
    REASON_PODS_NOT_READY,
    REASON_PROVISIONED,
    SECRET_USAGE_ADMIN_MTLS,
    SECRET_USAGE_LABEL,
    SECRET_USAGE_WEBHOOK,
    SERVICE_KIND_ADMIN,
    SERVICE_KIND_INGRESS,
    SERVICE_KIND_LABEL,
    SERVICE_KIND_WEBHOOK,
)
from gatewayop.controllers.base import ControllerBase
from gatewayop.controllers.extensions import apply_konnect_extension, as_hash_input
from gatewayop.crd.registry import CRDRegistry
from gatewayop.errors import DependencyNotReady, GrantMissing, InvalidSpec
from gatewayop.reconcile.certificates import (
    CLIENT_USAGES,
    SERVER_USAGES,
    ensure_certificate,
    ensure_certificates_deleted,
)
from gatewayop.reconcile.grants import validate_watch_namespace_grants
from gatewayop.reconcile.owned import (
    CLUSTER_ROLE,
    CLUSTER_ROLE_BINDING,
    DEPLOYMENT,
    ROLE,
    ROLE_BINDING,
    SERVICE,
    SERVICE_ACCOUNT,
    VALIDATING_WEBHOOK_CONFIGURATION,
    delete_owned,
    list_owned,
    reconcile_owned,
)
from gatewayop.reconcile.rbac import ensure_namespaced_rbac, partition_rules
from gatewayop.reconcile.status import (
    ReconcileResult,
    get_condition,
    set_condition,
    update_status_if_changed,
)
from gatewayop.resources.controlplane import (
    generate_admission_webhook_service,
    generate_controlplane_deployment,
    generate_validating_webhook_configuration,
    is_admission_webhook_enabled,
)
from gatewayop.resources.images import resolve_image
from gatewayop.resources.ownership import owner_match_labels
from gatewayop.resources.rbac import (
    controlplane_rules,
    generate_cluster_role,
    generate_cluster_role_binding,
    generate_service_account,
)

logger = logging.getLogger(__name__)

KIND = "ControlPlane"


def parse_spec(cp):
    try:
        return CRDRegistry().parse_spec(KIND, cp)
    except ValidationError as e:
        raise InvalidSpec(f"invalid ControlPlane spec: {e}") from e


def _name(obj):
    return obj["metadata"]["name"]


def _labels(owner, key, value):
    return {**owner_match_labels(owner), key: value}


def deployment_ready(deployment):
    """All desired replicas report ready."""
    wanted = (deployment.get("spec") or {}).get("replicas")
    if wanted is None:
        wanted = 1
    ready = (deployment.get("status") or {}).get("readyReplicas") or 0
    return ready >= wanted


def dataplane_service_names(cluster, dp):
    """Names of the (admin, ingress) Services of a DataPlane, None where absent."""
    names = []
    for service_kind in (SERVICE_KIND_ADMIN, SERVICE_KIND_INGRESS):
        services = list_owned(
            cluster,
            dp,
            SERVICE,
            namespace=dp["metadata"]["namespace"],
            match_labels=_labels(dp, SERVICE_KIND_LABEL, service_kind),
        )
        names.append(_name(services[0]) if len(services) == 1 else None)
    return tuple(names)


def _resolve_dataplane(cluster, cp, spec):
    """Look up the referenced DataPlane.

    Returns:
        (spec, dataplane Service names, missing message). A DataPlane that does
        not exist is treated as unset, so the returned spec has no dataplane
        and the ControlPlane stays scaled to zero.
    """
    if not spec.dataplane:
        return spec, None, None
    dp = cluster.get("DataPlane", spec.dataplane, cp["metadata"]["namespace"])
    if dp is None:
        message = f"DataPlane {cp['metadata']['namespace']}/{spec.dataplane} not found"
        logger.warning(f"{message}, keeping ControlPlane {_name(cp)} scaled to zero")
        return spec.model_copy(update={"dataplane": None}), None, message
    return spec, dataplane_service_names(cluster, dp), None


def _watch_namespaces(cluster, cp, working):
    try:
        namespaces = validate_watch_namespace_grants(cluster, cp)
    except GrantMissing as e:
        set_condition(
            working, CONDITION_WATCH_NAMESPACE_GRANT_VALID, False, REASON_GRANT_MISSING, str(e)
        )
        raise
    set_condition(
        working,
        CONDITION_WATCH_NAMESPACE_GRANT_VALID,
        True,
        REASON_GRANT_VALID,
        "WatchNamespaceGrants valid for all watched namespaces",
    )
    return namespaces


def _ensure_rbac(cluster, cp, service_account, watch_namespaces, discovery):
    rules = controlplane_rules()
    if watch_namespaces is None:
        namespaced_rules, cluster_rules = [], rules
    else:
        if discovery is None:
            discovery = cluster.api_resource_mapping()
        namespaced_rules, cluster_rules = partition_rules(rules, discovery)

    changed = ensure_namespaced_rbac(
        cluster, cp, watch_namespaces, namespaced_rules, service_account
    )

    result, cluster_role = reconcile_owned(
        cluster, cp, CLUSTER_ROLE, generate_cluster_role(cp, cluster_rules)
    )
    changed = changed or result.changed

    result, _ = reconcile_owned(
        cluster,
        cp,
        CLUSTER_ROLE_BINDING,
        generate_cluster_role_binding(cp, _name(cluster_role), service_account),
    )
    return changed or result.changed


def _ensure_webhook(cluster, cp, spec, config):
    """Return (webhook Service, certificate Secret), or (None, None) when disabled."""
    service_labels = _labels(cp, SERVICE_KIND_LABEL, SERVICE_KIND_WEBHOOK)
    secret_labels = _labels(cp, SECRET_USAGE_LABEL, SECRET_USAGE_WEBHOOK)

    if not is_admission_webhook_enabled(spec, config):
        delete_owned(cluster, cp, VALIDATING_WEBHOOK_CONFIGURATION)
        delete_owned(
            cluster, cp, SERVICE, cp["metadata"]["namespace"], match_labels=service_labels
        )
        ensure_certificates_deleted(cluster, cp, secret_labels)
        return None, None

    _, service = reconcile_owned(
        cluster,
        cp,
        SERVICE,
        generate_admission_webhook_service(cp),
        match_labels=service_labels,
    )
    _, secret = ensure_certificate(
        cluster,
        cp,
        f"{_name(service)}.{cp['metadata']['namespace']}.svc",
        None,
        SERVER_USAGES,
        secret_labels,
        config,
    )
    return service, secret


def _set_provisioned(working, spec, deployment, dataplane_missing=None):
    if not spec.dataplane:
        set_condition(
            working,
            CONDITION_PROVISIONED,
            False,
            REASON_NO_DATAPLANE,
            dataplane_missing or "no DataPlane set, the ControlPlane is scaled to zero",
        )
    elif deployment_ready(deployment):
        set_condition(
            working, CONDITION_PROVISIONED, True, REASON_PROVISIONED, "pods are available"
        )
    else:
        set_condition(
            working,
            CONDITION_PROVISIONED,
            False,
            REASON_PODS_NOT_READY,
            f"Deployment {_name(deployment)} is not ready yet",
        )


def _reconcile(cluster, cp, working, spec, config, discovery):
    if get_condition(working, CONDITION_PROVISIONED) is None:
        set_condition(
            working,
            CONDITION_PROVISIONED,
            False,
            REASON_PODS_NOT_READY,
            "ControlPlane is scheduled for provisioning",
        )

    spec, dataplane_services, dataplane_missing = _resolve_dataplane(cluster, cp, spec)
    watch_namespaces = _watch_namespaces(cluster, cp, working)
    konnect = apply_konnect_extension(cluster, cp, working, spec.extensions)
    image = resolve_image(
        spec.deployment.podTemplateSpec,
        CONTROLPLANE_CONTAINER_NAME,
        config.controlplane_default_image,
        validate=config.validate_images,
    )

    changed = False
    result, service_account = reconcile_owned(
        cluster, cp, SERVICE_ACCOUNT, generate_service_account(cp)
    )
    changed = changed or result.changed

    changed = _ensure_rbac(cluster, cp, service_account, watch_namespaces, discovery) or changed

    result, admin_secret = ensure_certificate(
        cluster,
        cp,
        f"{_name(cp)}.{cp['metadata']['namespace']}",
        None,
        CLIENT_USAGES,
        _labels(cp, SECRET_USAGE_LABEL, SECRET_USAGE_ADMIN_MTLS),
        config,
    )
    changed = changed or result.changed

    webhook_service, webhook_secret = _ensure_webhook(cluster, cp, spec, config)
    webhook_secret_name = _name(webhook_secret) if webhook_secret else None

    deployment = generate_controlplane_deployment(
        cp,
        spec,
        image,
        service_account_name=_name(service_account),
        admin_mtls_secret_name=_name(admin_secret),
        webhook_secret_name=webhook_secret_name,
        watch_namespaces=watch_namespaces,
        dataplane_services=dataplane_services,
        konnect=konnect,
    )
    hash_input = {
        "spec": spec.model_dump(mode="json", by_alias=True),
        "image": image,
        "serviceAccount": _name(service_account),
        "adminSecret": _name(admin_secret),
        "webhookSecret": webhook_secret_name,
        "watchNamespaces": watch_namespaces,
        "dataplaneServices": list(dataplane_services) if dataplane_services else None,
        "konnect": as_hash_input(konnect),
    }
    result, deployment = reconcile_owned(
        cluster,
        cp,
        DEPLOYMENT,
        deployment,
        enforce=config.enforce_config,
        hash_input=hash_input,
    )
    changed = changed or result.changed

    if webhook_service is not None:
        configuration = generate_validating_webhook_configuration(
            cp, _name(webhook_service), (webhook_secret.get("data") or {}).get("ca.crt")
        )
        result, _ = reconcile_owned(cluster, cp, VALIDATING_WEBHOOK_CONFIGURATION, configuration)
        changed = changed or result.changed

    _set_provisioned(working, spec, deployment, dataplane_missing)
    return ReconcileResult(changed=changed)


def reconcile_controlplane(cluster, cp, config, discovery=None):
    """ Run one reconcile pass for a ControlPlane.

    Args:
        cluster: ClusterClient
        cp: ControlPlane object as read from the cluster
        config: OperatorConfig
        discovery: Discovery snapshot, fetched from the cluster when needed if None

    Returns:
        ReconcileResult
    """
    spec = parse_spec(cp)
    working = copy.deepcopy(cp)
    working.setdefault("status", {})

    try:
        result = _reconcile(cluster, cp, working, spec, config, discovery)
    except (DependencyNotReady, InvalidSpec):
        update_status_if_changed(cluster, KIND, cp, working["status"])
        raise

    working["status"]["observedGeneration"] = cp["metadata"].get("generation")
    update_status_if_changed(cluster, KIND, cp, working["status"])
    return result


def cleanup_controlplane(cluster, cp):
    """Delete the children garbage collection does not reach.

    Cluster-scoped children and Roles in other namespaces carry no
    ownerReference, so they are removed by label.
    """
    for child_kind in (
        VALIDATING_WEBHOOK_CONFIGURATION,
        CLUSTER_ROLE_BINDING,
        CLUSTER_ROLE,
        ROLE_BINDING,
        ROLE,
    ):
        delete_owned(cluster, cp, child_kind)
    logger.info(f"Cleaned up cluster-wide children of ControlPlane {cp['metadata']['namespace']}/{_name(cp)}")


class ControlPlaneController(ControllerBase):
    """Reconciles ControlPlanes into a controller Deployment and its RBAC, certificates and webhook."""

    @property
    def name(self):
        return "controlplane"

    @property
    def kind(self):
        return KIND

    @property
    def handler_module(self):
        return "gatewayop.handlers.controlplane_handler"

    @property
    def models(self):
        from gatewayop.models.controlplane import ControlPlaneSpec, WatchNamespaceGrantSpec

        return [ControlPlaneSpec, WatchNamespaceGrantSpec]

    def reconcile(self, obj):
        return reconcile_controlplane(self.cluster, obj, self.config)

    def cleanup(self, obj):
        cleanup_controlplane(self.cluster, obj)
