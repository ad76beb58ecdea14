"""Cross-namespace watch permissions for ControlPlanes."""

import logging

from pydantic import ValidationError

from gatewayop.consts import OPERATOR_GROUP
from gatewayop.crd.registry import CRDRegistry
from gatewayop.errors import GrantMissing, InvalidSpec
from gatewayop.models.controlplane import (
    WATCH_NAMESPACES_ALL,
    WATCH_NAMESPACES_LIST,
    WATCH_NAMESPACES_OWN,
    WatchNamespaces,
)

logger = logging.getLogger(__name__)


def _grants_controlplane(grant, namespace):
    try:
        spec = CRDRegistry().parse_spec("WatchNamespaceGrant", grant)
    except ValidationError as e:
        meta = grant["metadata"]
        raise InvalidSpec(
            f"invalid WatchNamespaceGrant {meta.get('namespace')}/{meta['name']}: {e}"
        ) from e
    return any(
        source.group == OPERATOR_GROUP
        and source.kind == "ControlPlane"
        and source.namespace == namespace
        for source in spec.from_
    )


def validate_watch_namespace_grants(cluster, cp):
    """ Resolve the namespaces a ControlPlane may watch.

    Returns:
        None when every namespace is watched, otherwise the list of
        namespaces, always including the ControlPlane's own.

    Raises:
        GrantMissing: a listed namespace has no WatchNamespaceGrant for this
            ControlPlane's namespace.
        InvalidSpec: unknown watch namespaces type, or a WatchNamespaceGrant in a
            listed namespace does not parse.
    """
    spec = CRDRegistry().parse_spec("ControlPlane", cp)
    own_namespace = cp["metadata"]["namespace"]
    watch = spec.watchNamespaces or WatchNamespaces()

    if watch.type == WATCH_NAMESPACES_ALL:
        return None
    if watch.type == WATCH_NAMESPACES_OWN:
        return [own_namespace]
    if watch.type != WATCH_NAMESPACES_LIST:
        raise InvalidSpec(f"unknown watchNamespaces type {watch.type}")

    namespaces = []
    for namespace in watch.list:
        if namespace in namespaces or namespace == own_namespace:
            continue
        grants = cluster.list("WatchNamespaceGrant", namespace=namespace)
        if not any(_grants_controlplane(grant, own_namespace) for grant in grants):
            raise GrantMissing(namespace, own_namespace)
        namespaces.append(namespace)

    logger.debug(f"Watch namespaces of {own_namespace}/{cp['metadata']['name']}: {namespaces}")
    return namespaces + [own_namespace]
