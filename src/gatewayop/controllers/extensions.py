"""Applying KonnectExtensions to the DataPlanes and ControlPlanes that reference them."""

import logging
from collections import namedtuple

from gatewayop.consts import (
    CONDITION_KONNECT_EXTENSION_APPLIED,
    CONDITION_READY,
    KONNECT_GROUP,
    REASON_EXTENSION_APPLIED,
    REASON_EXTENSION_NOT_FOUND,
    REASON_EXTENSION_NOT_READY,
)
from gatewayop.errors import DependencyNotReady, InvalidSpec, ReferenceNotFound
from gatewayop.models.konnect import KonnectEndpoints
from gatewayop.reconcile.status import has_condition_true, remove_condition, set_condition

logger = logging.getLogger(__name__)

KONNECT_EXTENSION_KIND = "KonnectExtension"

KonnectApplication = namedtuple(
    "KonnectApplication", ["name", "secret_name", "control_plane_id", "endpoints"]
)


def konnect_extension_refs(obj, extensions):
    """Yield (namespace, name) of the KonnectExtensions in ``extensions``."""
    namespace = obj["metadata"]["namespace"]
    for ref in extensions:
        if ref.group != KONNECT_GROUP or ref.kind != KONNECT_EXTENSION_KIND:
            logger.debug(f"Ignoring extension {ref.group}/{ref.kind} {ref.name}")
            continue
        yield ref.namespace or namespace, ref.name


def references_extension(obj, ext):
    """True when ``obj`` lists ``ext`` among its extensions."""
    wanted = (ext["metadata"]["namespace"], ext["metadata"]["name"])
    for ref in (obj.get("spec") or {}).get("extensions") or []:
        if ref.get("group") != KONNECT_GROUP or ref.get("kind") != KONNECT_EXTENSION_KIND:
            continue
        if (ref.get("namespace") or obj["metadata"]["namespace"], ref.get("name")) == wanted:
            return True
    return False


def as_hash_input(konnect):
    if konnect is None:
        return None
    return {
        "name": konnect.name,
        "secretName": konnect.secret_name,
        "controlPlaneID": konnect.control_plane_id,
        "endpoints": konnect.endpoints.model_dump() if konnect.endpoints else None,
    }


def apply_konnect_extension(cluster, obj, working, extensions):
    """ Resolve the KonnectExtension referenced by ``obj``.

    Sets ``KonnectExtensionApplied`` on ``working``, or removes it when no
    KonnectExtension is referenced.

    Returns:
        KonnectApplication, or None without a KonnectExtension reference.

    Raises:
        InvalidSpec: the reference points at another namespace.
        ReferenceNotFound: the KonnectExtension does not exist.
        DependencyNotReady: the KonnectExtension is not Ready.
    """
    refs = list(konnect_extension_refs(obj, extensions))
    if not refs:
        remove_condition(working, CONDITION_KONNECT_EXTENSION_APPLIED)
        return None

    namespace, name = refs[0]
    if namespace != obj["metadata"]["namespace"]:
        raise InvalidSpec(f"KonnectExtension {namespace}/{name} must be in the same namespace")

    ext = cluster.get(KONNECT_EXTENSION_KIND, name, namespace)
    if ext is None:
        message = f"KonnectExtension {namespace}/{name} not found"
        set_condition(
            working, CONDITION_KONNECT_EXTENSION_APPLIED, False, REASON_EXTENSION_NOT_FOUND, message
        )
        raise ReferenceNotFound(message)

    if not has_condition_true(ext, CONDITION_READY):
        message = f"KonnectExtension {namespace}/{name} is not ready"
        set_condition(
            working, CONDITION_KONNECT_EXTENSION_APPLIED, False, REASON_EXTENSION_NOT_READY, message
        )
        raise DependencyNotReady(message)

    status = ext.get("status") or {}
    konnect = status.get("konnect") or {}
    secret_ref = (status.get("dataPlaneClientAuth") or {}).get("certificateSecretRef") or {}
    endpoints = konnect.get("endpoints")

    set_condition(
        working,
        CONDITION_KONNECT_EXTENSION_APPLIED,
        True,
        REASON_EXTENSION_APPLIED,
        f"KonnectExtension {namespace}/{name} applied",
    )
    return KonnectApplication(
        name=name,
        secret_name=secret_ref.get("name"),
        control_plane_id=konnect.get("controlPlaneID"),
        endpoints=KonnectEndpoints.model_validate(endpoints) if endpoints else None,
    )
