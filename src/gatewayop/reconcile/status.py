"""Conditions, status writes and cross-object status aggregation."""

import copy
import datetime
import logging
from dataclasses import dataclass

from kubernetes.client.exceptions import ApiException

from gatewayop.consts import (
    CLUSTER_TYPE_CONTROL_PLANE,
    CLUSTER_TYPE_K8S_INGRESS_CONTROLLER,
    CONDITION_CONTROLPLANE_REF_VALID,
    CONDITION_KONNECT_EXTENSION_APPLIED,
    CONDITION_PROGRAMMED,
    REASON_REF_INVALID,
    REASON_REF_VALID,
)
from gatewayop.crd.registry import CRDRegistry
from gatewayop.errors import InvalidSpec, ReferenceNotFound, ReferenceNotProgrammed, StatusConflict
from gatewayop.kube.client import is_conflict
from gatewayop.models.konnect import REF_TYPE_KONNECT_ID, REF_TYPE_NAMESPACED

logger = logging.getLogger(__name__)

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"


@dataclass
class ReconcileResult:
    """Outcome of a pass that did not fail."""

    changed: bool = False
    requeue: bool = False


def _now():
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _status(obj):
    return obj.setdefault("status", {}) if obj is not None else {}


def get_condition(obj, condition_type):
    """Return the condition dict of ``condition_type`` on ``obj``, or None."""
    for condition in (obj.get("status") or {}).get("conditions") or []:
        if condition.get("type") == condition_type:
            return condition
    return None


def has_condition_true(obj, condition_type):
    condition = get_condition(obj, condition_type)
    return condition is not None and condition.get("status") == CONDITION_TRUE


def set_condition(obj, condition_type, status, reason, message=""):
    """ Set a condition on ``obj`` in place.

    ``lastTransitionTime`` only moves when the status value changes. The
    conditions list is kept sorted by type.

    Returns:
        True if the condition changed.
    """
    if isinstance(status, bool):
        status = CONDITION_TRUE if status else CONDITION_FALSE

    conditions = _status(obj).setdefault("conditions", [])
    generation = obj.get("metadata", {}).get("generation")
    existing = get_condition(obj, condition_type)

    condition = {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": _now(),
        "observedGeneration": generation,
    }
    if existing is not None:
        if existing.get("status") == status:
            condition["lastTransitionTime"] = existing.get("lastTransitionTime")
        if all(existing.get(k) == v for k, v in condition.items()):
            return False
        conditions.remove(existing)

    conditions.append(condition)
    conditions.sort(key=lambda c: c["type"])
    return True


def remove_condition(obj, condition_type):
    """Drop a condition from ``obj``. Returns True if it was present."""
    conditions = (obj.get("status") or {}).get("conditions")
    if not conditions:
        return False
    kept = [c for c in conditions if c.get("type") != condition_type]
    obj["status"]["conditions"] = kept
    return len(kept) != len(conditions)


def update_status_if_changed(cluster, kind, obj, status):
    """ Write ``status`` to ``obj`` unless it is already in place.

    Returns:
        The object as returned by the API, or None when nothing was written.

    Raises:
        StatusConflict: the object changed since it was read.
    """
    if (obj.get("status") or {}) == status:
        return None

    body = copy.deepcopy(obj)
    body["status"] = status
    try:
        return cluster.replace_status(kind, body)
    except ApiException as e:
        if is_conflict(e):
            raise StatusConflict(
                f"{kind} {obj['metadata'].get('namespace')}/{obj['metadata']['name']} "
                "status changed concurrently"
            ) from e
        raise


def _ref(obj):
    return {"name": obj["metadata"]["name"], "namespace": obj["metadata"]["namespace"]}


def _sorted_refs(objects):
    refs = [_ref(obj) for obj in objects if has_condition_true(obj, CONDITION_KONNECT_EXTENSION_APPLIED)]
    return sorted(refs, key=lambda ref: f"{ref['namespace']}/{ref['name']}")


def ensure_extendable_refs_in_status(cluster, ext, dataplanes, controlplanes):
    """ Record which DataPlanes and ControlPlanes have the extension applied.

    Only dependents with ``KonnectExtensionApplied=True`` are listed. A
    concurrent modification is reported as a requeue, not an error.
    """
    status = copy.deepcopy(ext.get("status") or {})
    status["dataPlaneRefs"] = _sorted_refs(dataplanes)
    status["controlPlaneRefs"] = _sorted_refs(controlplanes)

    current = ext.get("status") or {}
    if (
        current.get("dataPlaneRefs", []) == status["dataPlaneRefs"]
        and current.get("controlPlaneRefs", []) == status["controlPlaneRefs"]
    ):
        return ReconcileResult()

    try:
        updated = update_status_if_changed(cluster, "KonnectExtension", ext, status)
    except StatusConflict as e:
        logger.info(f"Requeueing: {e}")
        return ReconcileResult(requeue=True)
    if updated is not None:
        ext["metadata"] = updated.get("metadata", ext["metadata"])
    ext["status"] = status
    return ReconcileResult(changed=True)


def konnect_cluster_type_to_crd(cluster_type):
    """Map a Konnect API cluster type to the value shown in KonnectExtension status."""
    if not cluster_type or cluster_type == "CLUSTER_TYPE_CONTROL_PLANE":
        return CLUSTER_TYPE_CONTROL_PLANE
    if cluster_type == "CLUSTER_TYPE_K8S_INGRESS_CONTROLLER":
        return CLUSTER_TYPE_K8S_INGRESS_CONTROLLER
    return ""


def default_cluster_type_lookup(kgcp):
    """Cluster type requested when the KonnectGatewayControlPlane was created."""
    request = (kgcp.get("spec") or {}).get("createControlPlaneRequest") or {}
    return request.get("cluster_type")


def resolve_konnect_control_plane(cluster, ext):
    """ Find the KonnectGatewayControlPlane a KonnectExtension points at.

    Sets ``ControlPlaneRefValid`` on ``ext`` either way.

    Raises:
        ReferenceNotFound: no matching control plane.
        ReferenceNotProgrammed: the control plane is not Programmed yet.
        InvalidSpec: unknown reference type.
    """
    spec = CRDRegistry().parse_spec("KonnectExtension", ext)
    ref = spec.konnect.controlPlane.ref
    namespace = ext["metadata"]["namespace"]

    if ref.type == REF_TYPE_NAMESPACED:
        if ref.konnectNamespacedRef is None:
            raise InvalidSpec("konnectNamespacedRef must be set for konnectNamespacedRef references")
        description = f"{namespace}/{ref.konnectNamespacedRef.name}"
        kgcp = cluster.get("KonnectGatewayControlPlane", ref.konnectNamespacedRef.name, namespace)
    elif ref.type == REF_TYPE_KONNECT_ID:
        if not ref.konnectID:
            raise InvalidSpec("konnectID must be set for konnectID references")
        description = f"with ID {ref.konnectID} in {namespace}"
        matches = [
            item
            for item in cluster.list("KonnectGatewayControlPlane", namespace=namespace)
            if (item.get("status") or {}).get("id") == ref.konnectID
        ]
        if len(matches) > 1:
            logger.warning(f"{len(matches)} KonnectGatewayControlPlanes {description}, using the first")
        kgcp = matches[0] if matches else None
    else:
        raise InvalidSpec(f"unknown control plane reference type {ref.type}")

    if kgcp is None:
        message = f"KonnectGatewayControlPlane {description} not found"
        set_condition(ext, CONDITION_CONTROLPLANE_REF_VALID, False, REASON_REF_INVALID, message)
        raise ReferenceNotFound(message)

    if not has_condition_true(kgcp, CONDITION_PROGRAMMED):
        message = f"KonnectGatewayControlPlane {description} is not programmed"
        set_condition(ext, CONDITION_CONTROLPLANE_REF_VALID, False, REASON_REF_INVALID, message)
        raise ReferenceNotProgrammed(message)

    set_condition(
        ext,
        CONDITION_CONTROLPLANE_REF_VALID,
        True,
        REASON_REF_VALID,
        f"KonnectGatewayControlPlane {description} resolved",
    )
    return kgcp
