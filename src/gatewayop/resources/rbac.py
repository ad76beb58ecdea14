"""ServiceAccount, Role and binding manifests for a ControlPlane."""

from gatewayop.resources.ownership import generate_name, set_owner
from gatewayop.resources.templates import render_manifest

RBAC_API_VERSION = "rbac.authorization.k8s.io/v1"
RBAC_GROUP = "rbac.authorization.k8s.io"


def controlplane_rules():
    """Full rule set the controller container needs."""
    return render_manifest("controlplane-clusterrole.yaml.j2", generate_name="", labels={})[
        "rules"
    ]


def generate_service_account(owner):
    service_account = {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {
            "generateName": generate_name(owner),
            "namespace": owner["metadata"]["namespace"],
        },
    }
    return set_owner(service_account, owner)


def generate_cluster_role(owner, rules=None):
    """ClusterRole holding ``rules``, or the full controller rule set."""
    cluster_role = render_manifest(
        "controlplane-clusterrole.yaml.j2", generate_name=generate_name(owner), labels={}
    )
    if rules is not None:
        cluster_role["rules"] = rules
    return set_owner(cluster_role, owner)


def generate_role(owner, namespace, rules):
    role = {
        "apiVersion": RBAC_API_VERSION,
        "kind": "Role",
        "metadata": {"generateName": generate_name(owner), "namespace": namespace},
        "rules": rules,
    }
    return set_owner(role, owner)


def _subjects(service_account):
    return [
        {
            "kind": "ServiceAccount",
            "name": service_account["metadata"]["name"],
            "namespace": service_account["metadata"]["namespace"],
        }
    ]


def generate_role_binding(owner, namespace, role_name, service_account):
    binding = {
        "apiVersion": RBAC_API_VERSION,
        "kind": "RoleBinding",
        "metadata": {"generateName": generate_name(owner), "namespace": namespace},
        "roleRef": {"apiGroup": RBAC_GROUP, "kind": "Role", "name": role_name},
        "subjects": _subjects(service_account),
    }
    return set_owner(binding, owner)


def generate_cluster_role_binding(owner, cluster_role_name, service_account):
    binding = {
        "apiVersion": RBAC_API_VERSION,
        "kind": "ClusterRoleBinding",
        "metadata": {"generateName": generate_name(owner)},
        "roleRef": {"apiGroup": RBAC_GROUP, "kind": "ClusterRole", "name": cluster_role_name},
        "subjects": _subjects(service_account),
    }
    return set_owner(binding, owner)
