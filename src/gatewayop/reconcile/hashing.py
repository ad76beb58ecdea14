"""Spec fingerprints stored on children for cheap change detection."""

import hashlib
import json

from gatewayop.consts import SPEC_HASH_ANNOTATION


def _jsonable(value):
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    return value


def spec_hash(value):
    """Reproducible sha256 of the canonical JSON form of ``value``."""
    canonical = json.dumps(
        _jsonable(value), sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def annotate_with_hash(obj, value):
    """Store the fingerprint of ``value`` on ``obj`` and return the digest."""
    digest = spec_hash(value)
    obj.setdefault("metadata", {}).setdefault("annotations", {})[SPEC_HASH_ANNOTATION] = digest
    return digest


def stored_hash(obj):
    return (obj.get("metadata", {}).get("annotations") or {}).get(SPEC_HASH_ANNOTATION)


def hash_matches(existing, value):
    """True when ``existing`` carries the fingerprint of ``value``."""
    return stored_hash(existing) == spec_hash(value)
