"""Label-based owner markers linking children back to their parent."""

from gatewayop.consts import (
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    OWNED_BY_NAME_LABEL,
    OWNED_BY_NAMESPACE_LABEL,
    OWNED_BY_UID_LABEL,
    OWNER_KIND_LABEL,
)


def owner_match_labels(owner):
    """Labels that select exactly one parent's children."""
    meta = owner["metadata"]
    return {
        MANAGED_BY_LABEL: MANAGED_BY_VALUE,
        OWNER_KIND_LABEL: owner["kind"],
        OWNED_BY_UID_LABEL: meta["uid"],
    }


def owner_labels(owner):
    """Full owner label set, enough to rebuild the parent's identity."""
    meta = owner["metadata"]
    return {
        **owner_match_labels(owner),
        OWNED_BY_NAMESPACE_LABEL: meta.get("namespace", ""),
        OWNED_BY_NAME_LABEL: meta["name"],
    }


def owner_reference(owner):
    meta = owner["metadata"]
    return {
        "apiVersion": owner["apiVersion"],
        "kind": owner["kind"],
        "name": meta["name"],
        "uid": meta["uid"],
        "controller": True,
        "blockOwnerDeletion": True,
    }


def set_owner(child, owner):
    """Mark ``child`` as owned by ``owner``.

    Children in the owner's namespace also get an ownerReference so the
    garbage collector removes them with the parent.
    """
    meta = child.setdefault("metadata", {})
    meta.setdefault("labels", {}).update(owner_labels(owner))
    if meta.get("namespace") and meta["namespace"] == owner["metadata"].get("namespace"):
        meta["ownerReferences"] = [owner_reference(owner)]
    return child


def owner_identity(child):
    """Return (kind, namespace, name, uid) of the owning parent, or None."""
    labels = child.get("metadata", {}).get("labels") or {}
    if labels.get(MANAGED_BY_LABEL) != MANAGED_BY_VALUE:
        return None
    return (
        labels.get(OWNER_KIND_LABEL),
        labels.get(OWNED_BY_NAMESPACE_LABEL),
        labels.get(OWNED_BY_NAME_LABEL),
        labels.get(OWNED_BY_UID_LABEL),
    )


def generate_name(owner, suffix=""):
    """``generateName`` prefix for a child, trimmed to leave room for the random tail."""
    name = owner["metadata"]["name"]
    prefix = f"{owner['kind'].lower()}-{name}-"
    if suffix:
        prefix = f"{prefix}{suffix}-"
    return prefix[:57]
