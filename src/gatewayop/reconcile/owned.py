"""Converge the set of children of one kind owned by a parent.

Children are found by owner labels, never by name. For each child kind the
observed set is driven to exactly one object matching the desired manifest:

- none found: create it.
- one found: merge metadata, then patch the fields that differ.
- several found: keep one, delete the rest and ask for a requeue.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from gatewayop.consts import SPEC_HASH_ANNOTATION
from gatewayop.errors import DuplicatesReduced, StaleBindingRemoved
from gatewayop.kube.client import is_namespaced
from gatewayop.reconcile.hashing import annotate_with_hash, hash_matches, stored_hash
from gatewayop.resources.compare import get_path, merge_patch_value, semantically_equal, set_path
from gatewayop.resources.ownership import owner_match_labels

logger = logging.getLogger(__name__)


class Result(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    NOOP = "noop"

    @property
    def changed(self):
        return self is not Result.NOOP


@dataclass(frozen=True)
class ChildKind:
    """How the engine treats one kind of child.

    Attributes:
        kind: API kind
        mutable_fields: Dotted paths patched when the fingerprint is stale
            (every pass for kinds that are not fingerprinted)
        always_fields: Dotted paths compared on every pass regardless of the fingerprint
        fingerprinted: Whether a spec hash annotation gates ``mutable_fields``
        role_ref: Binding kinds, where a changed ``roleRef`` forces recreation
        preference: Extra sort key for choosing the survivor among duplicates
    """

    kind: str
    mutable_fields: Tuple[str, ...] = ()
    always_fields: Tuple[str, ...] = ()
    fingerprinted: bool = False
    role_ref: bool = False
    preference: Optional[Callable[[dict], tuple]] = None

    @property
    def namespaced(self):
        return is_namespaced(self.kind)

    def survivor_key(self, obj):
        meta = obj.get("metadata", {})
        preferred = self.preference(obj) if self.preference else ()
        return (*preferred, meta.get("creationTimestamp") or "", meta.get("name") or "")


def _most_ready(obj):
    return (-((obj.get("status") or {}).get("readyReplicas") or 0),)


def _has_certificate(obj):
    return (0 if (obj.get("data") or {}).get("tls.crt") else 1,)


DEPLOYMENT = ChildKind(
    "Deployment",
    mutable_fields=("spec.template",),
    always_fields=("spec.replicas",),
    fingerprinted=True,
    preference=_most_ready,
)
SERVICE_ACCOUNT = ChildKind("ServiceAccount")
SERVICE = ChildKind("Service", mutable_fields=("spec.type", "spec.selector", "spec.ports"))
SECRET = ChildKind("Secret", preference=_has_certificate)
ROLE = ChildKind("Role", mutable_fields=("rules",))
CLUSTER_ROLE = ChildKind("ClusterRole", mutable_fields=("rules",))
ROLE_BINDING = ChildKind("RoleBinding", mutable_fields=("subjects",), role_ref=True)
CLUSTER_ROLE_BINDING = ChildKind(
    "ClusterRoleBinding", mutable_fields=("subjects",), role_ref=True
)
VALIDATING_WEBHOOK_CONFIGURATION = ChildKind(
    "ValidatingWebhookConfiguration", mutable_fields=("webhooks",), fingerprinted=True
)


def _name(obj):
    return obj["metadata"]["name"]


def _namespace(obj):
    return obj["metadata"].get("namespace")


def list_owned(cluster, owner, child_kind, namespace=None, match_labels=None):
    labels = match_labels or owner_match_labels(owner)
    return cluster.list(child_kind.kind, namespace=namespace, labels=labels)


def reduce_duplicates(cluster, child_kind, objects):
    """Keep the preferred object, delete the others and raise DuplicatesReduced."""
    ordered = sorted(objects, key=child_kind.survivor_key)
    survivor = ordered[0]
    for obj in ordered[1:]:
        logger.info(
            f"Deleting duplicate {child_kind.kind} {_namespace(obj) or ''}/{_name(obj)}, "
            f"keeping {_name(survivor)}"
        )
        cluster.delete(child_kind.kind, _name(obj), namespace=_namespace(obj))
    raise DuplicatesReduced(child_kind.kind, len(objects))


def _metadata_patch(desired, current):
    want = desired.get("metadata", {})
    have = current.get("metadata", {})
    patch = {}
    for key in ("labels", "annotations"):
        wanted = {
            k: v for k, v in (want.get(key) or {}).items() if k != SPEC_HASH_ANNOTATION
        }
        if wanted and not semantically_equal(wanted, have.get(key) or {}):
            patch[key] = wanted
    references = want.get("ownerReferences")
    if references and not semantically_equal(references, have.get("ownerReferences") or []):
        patch["ownerReferences"] = references
    return patch


def reconcile_owned(
    cluster,
    owner,
    child_kind,
    desired,
    namespace=None,
    match_labels=None,
    enforce=False,
    hash_input=None,
):
    """ Drive the children of ``child_kind`` owned by ``owner`` towards ``desired``.

    Args:
        cluster: ClusterClient
        owner: Parent object
        child_kind: ChildKind describing the child
        desired: Desired manifest
        namespace: Namespace to look in, defaults to the desired one
        match_labels: Labels selecting the children, defaults to the owner match labels
        enforce: Converge ``mutable_fields`` even when the fingerprint matches
        hash_input: Value fingerprinted for ``fingerprinted`` kinds, defaults to
            the desired ``mutable_fields``

    Returns:
        (Result, object) with the created, updated or unchanged child.

    Raises:
        DuplicatesReduced: several children matched and all but one were deleted.
        StaleBindingRemoved: a binding pointed at another role and was deleted.
    """
    if namespace is None and child_kind.namespaced:
        namespace = _namespace(desired)

    if child_kind.fingerprinted:
        if hash_input is None:
            hash_input = {f: get_path(desired, f) for f in child_kind.mutable_fields}
        annotate_with_hash(desired, hash_input)

    existing = list_owned(cluster, owner, child_kind, namespace, match_labels)

    if not existing:
        created = cluster.create(child_kind.kind, desired)
        logger.info(f"Created {child_kind.kind} {_namespace(created) or ''}/{_name(created)}")
        return Result.CREATED, created

    if len(existing) > 1:
        reduce_duplicates(cluster, child_kind, existing)

    current = existing[0]

    if child_kind.role_ref:
        old_role = (current.get("roleRef") or {}).get("name")
        new_role = desired["roleRef"]["name"]
        if old_role != new_role:
            cluster.delete(child_kind.kind, _name(current), namespace=_namespace(current))
            raise StaleBindingRemoved(child_kind.kind, _name(current), old_role, new_role)

    patch = {}
    metadata = _metadata_patch(desired, current)
    if metadata:
        patch["metadata"] = metadata

    for field in child_kind.always_fields:
        value = get_path(desired, field)
        if value is not None and not semantically_equal(value, get_path(current, field)):
            set_path(patch, field, value)

    # A stale fingerprint rewrites the fields outright: the superset comparison
    # cannot see keys dropped from the desired manifest.
    fingerprint_stale = child_kind.fingerprinted and not hash_matches(current, hash_input)
    if not child_kind.fingerprinted or enforce or fingerprint_stale:
        for field in child_kind.mutable_fields:
            value = get_path(desired, field)
            if value is None:
                continue
            observed = get_path(current, field)
            if fingerprint_stale or not semantically_equal(value, observed):
                set_path(patch, field, merge_patch_value(value, observed))
        if child_kind.fingerprinted and stored_hash(current) != stored_hash(desired):
            annotations = patch.setdefault("metadata", {}).setdefault("annotations", {})
            annotations[SPEC_HASH_ANNOTATION] = stored_hash(desired)

    if not patch:
        return Result.NOOP, current

    patch.setdefault("metadata", {})["resourceVersion"] = current["metadata"].get(
        "resourceVersion"
    )
    updated = cluster.patch(child_kind.kind, _name(current), patch, namespace=_namespace(current))
    logger.info(f"Updated {child_kind.kind} {_namespace(current) or ''}/{_name(current)}")
    return Result.UPDATED, updated


def delete_owned(cluster, owner, child_kind, namespace=None, match_labels=None):
    """Delete every child of ``child_kind`` owned by ``owner``."""
    result = Result.NOOP
    for obj in list_owned(cluster, owner, child_kind, namespace, match_labels):
        if cluster.delete(child_kind.kind, _name(obj), namespace=_namespace(obj)):
            logger.info(f"Deleted {child_kind.kind} {_namespace(obj) or ''}/{_name(obj)}")
            result = Result.DELETED
    return result


def prune_outside_namespaces(cluster, owner, child_kind, namespaces, match_labels=None):
    """Delete namespaced children living outside ``namespaces``.

    ``namespaces`` of None means every namespace is kept.
    """
    if namespaces is None:
        return Result.NOOP
    keep = set(namespaces)
    result = Result.NOOP
    for obj in list_owned(cluster, owner, child_kind, None, match_labels):
        if _namespace(obj) in keep:
            continue
        if cluster.delete(child_kind.kind, _name(obj), namespace=_namespace(obj)):
            logger.info(
                f"Pruned {child_kind.kind} {_namespace(obj)}/{_name(obj)} "
                f"outside the watched namespaces"
            )
            result = Result.DELETED
    return result
