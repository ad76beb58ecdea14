"""KonnectExtension reconciliation.

A KonnectExtension is Ready once its control plane reference resolves to a
programmed KonnectGatewayControlPlane and its client certificate Secret is
available. DataPlanes and ControlPlanes read that status when the extension
is applied to them, and the extension lists them back in its own status.
"""

import copy
import logging

from pydantic import ValidationError

from gatewayop.consts import (
    CONDITION_CERTIFICATE_PROVISIONED,
    CONDITION_READY,
    REASON_CA_SECRET_MISSING,
    REASON_CERTIFICATE_PROVISIONED,
    REASON_NOT_READY,
    REASON_READY,
    REASON_SECRET_NOT_FOUND,
    SECRET_USAGE_CLIENT_AUTH,
    SECRET_USAGE_LABEL,
)
from gatewayop.controllers.base import ControllerBase
from gatewayop.controllers.extensions import KONNECT_EXTENSION_KIND, references_extension
from gatewayop.crd.registry import CRDRegistry
from gatewayop.errors import CASecretMissing, DependencyNotReady, InvalidSpec, SecretNotFound
from gatewayop.models.konnect import PROVISIONING_MANUAL
from gatewayop.reconcile.certificates import (
    CLIENT_USAGES,
    ensure_certificate,
    ensure_certificates_deleted,
    get_manual_certificate,
)
from gatewayop.reconcile.status import (
    ReconcileResult,
    default_cluster_type_lookup,
    ensure_extendable_refs_in_status,
    konnect_cluster_type_to_crd,
    resolve_konnect_control_plane,
    set_condition,
    update_status_if_changed,
)
from gatewayop.resources.ownership import owner_match_labels

logger = logging.getLogger(__name__)


def parse_spec(ext):
    try:
        return CRDRegistry().parse_spec(KONNECT_EXTENSION_KIND, ext)
    except ValidationError as e:
        raise InvalidSpec(f"invalid KonnectExtension spec: {e}") from e


def dependents(cluster, ext):
    """DataPlanes and ControlPlanes in the extension's namespace that reference it."""
    namespace = ext["metadata"]["namespace"]
    dataplanes = [
        dp for dp in cluster.list("DataPlane", namespace=namespace) if references_extension(dp, ext)
    ]
    controlplanes = [
        cp
        for cp in cluster.list("ControlPlane", namespace=namespace)
        if references_extension(cp, ext)
    ]
    return dataplanes, controlplanes


def _client_certificate(cluster, ext, working, spec, config):
    namespace = ext["metadata"]["namespace"]
    certificate = spec.clientAuth.certificateSecret
    match_labels = {
        **owner_match_labels(ext),
        SECRET_USAGE_LABEL: SECRET_USAGE_CLIENT_AUTH,
    }

    try:
        if certificate.provisioning == PROVISIONING_MANUAL:
            if certificate.certificateSecretRef is None:
                raise InvalidSpec("certificateSecretRef is required for Manual provisioning")
            # Secrets issued while provisioning was automatic are no longer used.
            ensure_certificates_deleted(cluster, ext, match_labels)
            secret = get_manual_certificate(
                cluster, namespace, certificate.certificateSecretRef.name
            )
        else:
            _, secret = ensure_certificate(
                cluster,
                ext,
                f"{ext['metadata']['name']}.{namespace}",
                None,
                CLIENT_USAGES,
                match_labels,
                config,
            )
    except SecretNotFound as e:
        set_condition(
            working, CONDITION_CERTIFICATE_PROVISIONED, False, REASON_SECRET_NOT_FOUND, str(e)
        )
        raise
    except CASecretMissing as e:
        set_condition(
            working, CONDITION_CERTIFICATE_PROVISIONED, False, REASON_CA_SECRET_MISSING, str(e)
        )
        raise

    set_condition(
        working,
        CONDITION_CERTIFICATE_PROVISIONED,
        True,
        REASON_CERTIFICATE_PROVISIONED,
        f"client certificate available in Secret {secret['metadata']['name']}",
    )
    return secret


def reconcile_konnect_extension(cluster, ext, config, cluster_type_lookup=None):
    """ Run one reconcile pass for a KonnectExtension.

    Args:
        cluster: ClusterClient
        ext: KonnectExtension object as read from the cluster
        config: OperatorConfig
        cluster_type_lookup: Callable returning the Konnect cluster type of a
            KonnectGatewayControlPlane
    """
    lookup = cluster_type_lookup or default_cluster_type_lookup
    spec = parse_spec(ext)

    dataplanes, controlplanes = dependents(cluster, ext)
    refs = ensure_extendable_refs_in_status(cluster, ext, dataplanes, controlplanes)
    if refs.requeue:
        return refs

    working = copy.deepcopy(ext)
    status = working.setdefault("status", {})

    try:
        kgcp = resolve_konnect_control_plane(cluster, working)
        secret = _client_certificate(cluster, ext, working, spec, config)
    except (DependencyNotReady, InvalidSpec) as e:
        set_condition(working, CONDITION_READY, False, REASON_NOT_READY, str(e))
        update_status_if_changed(cluster, KONNECT_EXTENSION_KIND, ext, status)
        raise

    kgcp_status = kgcp.get("status") or {}
    status["konnect"] = {
        "controlPlaneID": kgcp_status.get("id"),
        "clusterType": konnect_cluster_type_to_crd(lookup(kgcp)),
    }
    if kgcp_status.get("endpoints"):
        status["konnect"]["endpoints"] = {
            "controlPlaneEndpoint": kgcp_status["endpoints"].get("controlPlaneEndpoint"),
            "telemetryEndpoint": kgcp_status["endpoints"].get("telemetryEndpoint"),
        }
    status["dataPlaneClientAuth"] = {
        "certificateSecretRef": {"name": secret["metadata"]["name"]}
    }
    set_condition(working, CONDITION_READY, True, REASON_READY, "KonnectExtension is ready")
    status["observedGeneration"] = ext["metadata"].get("generation")

    updated = update_status_if_changed(cluster, KONNECT_EXTENSION_KIND, ext, status)
    return ReconcileResult(changed=refs.changed or updated is not None)


class KonnectExtensionController(ControllerBase):
    """Resolves KonnectExtensions and provisions their client certificates."""

    cluster_type_lookup = staticmethod(default_cluster_type_lookup)

    @property
    def name(self):
        return "konnectextension"

    @property
    def kind(self):
        return KONNECT_EXTENSION_KIND

    @property
    def handler_module(self):
        return "gatewayop.handlers.konnect_handler"

    @property
    def models(self):
        from gatewayop.models.konnect import KonnectExtensionSpec, KonnectGatewayControlPlaneSpec

        return [KonnectExtensionSpec, KonnectGatewayControlPlaneSpec]

    def reconcile(self, obj):
        return reconcile_konnect_extension(
            self.cluster, obj, self.config, cluster_type_lookup=self.cluster_type_lookup
        )
