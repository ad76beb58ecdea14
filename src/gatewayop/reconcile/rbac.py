"""Split controller RBAC rules between per-namespace Roles and a ClusterRole.

When a ControlPlane only watches some namespaces, rules for namespaced
resources become one Role per watched namespace. Everything else, including
resources discovery does not know about, stays in the ClusterRole.
"""

import copy
import logging

from gatewayop.reconcile.owned import (
    ROLE,
    ROLE_BINDING,
    Result,
    delete_owned,
    prune_outside_namespaces,
    reconcile_owned,
)
from gatewayop.resources.rbac import generate_role, generate_role_binding

logger = logging.getLogger(__name__)


def _scope_lookup(discovery):
    """Map (group, resource) to whether the resource is namespaced."""
    lookup = {}
    for (group_name, _version), resources in (discovery or {}).items():
        for resource in resources:
            group = resource.get("group") or group_name
            lookup.setdefault((group, resource["name"]), bool(resource.get("namespaced")))
    return lookup


def partition_rules(rules, discovery):
    """ Split rules into (namespaced_rules, cluster_rules).

    Each (apiGroup, resource) pair of a rule yields a copy of the rule limited
    to that pair. Subresources follow their parent resource. Pairs unknown to
    discovery and non-resource rules go to the cluster side.

    Args:
        rules: PolicyRule dicts
        discovery: Mapping of (group, version) to resource dicts with
            ``name``, ``namespaced`` and ``group``
    """
    lookup = _scope_lookup(discovery)
    namespaced, cluster = [], []

    for rule in rules:
        if rule.get("nonResourceURLs") or not rule.get("resources"):
            cluster.append(copy.deepcopy(rule))
            continue

        for group in rule.get("apiGroups") or [""]:
            for resource in rule["resources"]:
                narrowed = copy.deepcopy(rule)
                narrowed["apiGroups"] = [group]
                narrowed["resources"] = [resource]
                base = resource.split("/", 1)[0]
                if lookup.get((group, base)) is True:
                    namespaced.append(narrowed)
                else:
                    if (group, base) not in lookup:
                        logger.debug(
                            f"Resource {group}/{base} not discovered, keeping it cluster wide"
                        )
                    cluster.append(narrowed)

    return namespaced, cluster


def generate_roles(owner, namespaces, rules):
    """One Role per namespace, each holding ``rules``."""
    return [generate_role(owner, namespace, copy.deepcopy(rules)) for namespace in namespaces]


def ensure_namespaced_rbac(cluster, owner, namespaces, rules, service_account):
    """ Converge the per-namespace Roles and RoleBindings of ``owner``.

    Args:
        cluster: ClusterClient
        owner: Parent object
        namespaces: Watched namespaces, None when every namespace is watched
        rules: Namespaced rules to grant in each namespace
        service_account: ServiceAccount the bindings point at

    Returns:
        True if anything changed.
    """
    if namespaces is None or not rules:
        deleted = [
            delete_owned(cluster, owner, ROLE_BINDING),
            delete_owned(cluster, owner, ROLE),
        ]
        return any(result.changed for result in deleted)

    changed = False
    for role in generate_roles(owner, namespaces, rules):
        namespace = role["metadata"]["namespace"]
        result, role = reconcile_owned(cluster, owner, ROLE, role, namespace=namespace)
        changed = changed or result.changed

        binding = generate_role_binding(
            owner, namespace, role["metadata"]["name"], service_account
        )
        result, _ = reconcile_owned(cluster, owner, ROLE_BINDING, binding, namespace=namespace)
        changed = changed or result.changed

    for kind in (ROLE_BINDING, ROLE):
        if prune_outside_namespaces(cluster, owner, kind, namespaces) is Result.DELETED:
            changed = True
    return changed
