"""Thin dict-in/dict-out facade over the kubernetes client.

Every object crossing this boundary is a plain dict in the API's JSON shape,
so the reconcile engine can treat all child kinds the same way.
"""

import logging

import kubernetes
from kubernetes.client.exceptions import ApiException

from gatewayop.crd.registry import CRDRegistry

logger = logging.getLogger(__name__)

# Lists in a patch replace the stored ones instead of being merged by key.
MERGE_PATCH = "application/merge-patch+json"

# kind -> (apiVersion, api class, method suffix, namespaced)
BUILTIN_KINDS = {
    "Deployment": ("apps/v1", kubernetes.client.AppsV1Api, "deployment", True),
    "ServiceAccount": ("v1", kubernetes.client.CoreV1Api, "service_account", True),
    "Service": ("v1", kubernetes.client.CoreV1Api, "service", True),
    "Secret": ("v1", kubernetes.client.CoreV1Api, "secret", True),
    "Role": (
        "rbac.authorization.k8s.io/v1",
        kubernetes.client.RbacAuthorizationV1Api,
        "role",
        True,
    ),
    "RoleBinding": (
        "rbac.authorization.k8s.io/v1",
        kubernetes.client.RbacAuthorizationV1Api,
        "role_binding",
        True,
    ),
    "ClusterRole": (
        "rbac.authorization.k8s.io/v1",
        kubernetes.client.RbacAuthorizationV1Api,
        "cluster_role",
        False,
    ),
    "ClusterRoleBinding": (
        "rbac.authorization.k8s.io/v1",
        kubernetes.client.RbacAuthorizationV1Api,
        "cluster_role_binding",
        False,
    ),
    "ValidatingWebhookConfiguration": (
        "admissionregistration.k8s.io/v1",
        kubernetes.client.AdmissionregistrationV1Api,
        "validating_webhook_configuration",
        False,
    ),
}


def is_conflict(exc):
    return isinstance(exc, ApiException) and exc.status == 409


def is_not_found(exc):
    return isinstance(exc, ApiException) and exc.status == 404


def label_selector(labels):
    """Render an equality-based label selector."""
    if not labels:
        return None
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def is_namespaced(kind):
    if kind in BUILTIN_KINDS:
        return BUILTIN_KINDS[kind][3]
    info = CRDRegistry().get(kind)
    return info is not None and info["scope"] == "Namespaced"


class ClusterClient:
    """Cluster API access used by every reconcile component."""

    def __init__(self, api_client=None):
        self._api_client = api_client or kubernetes.client.ApiClient()
        self._apis = {}

    def _api(self, api_class):
        if api_class not in self._apis:
            self._apis[api_class] = api_class(self._api_client)
        return self._apis[api_class]

    def _to_dict(self, kind, obj):
        data = self._api_client.sanitize_for_serialization(obj)
        data.setdefault("kind", kind)
        if kind in BUILTIN_KINDS:
            data.setdefault("apiVersion", BUILTIN_KINDS[kind][0])
        return data

    def _custom(self, kind):
        info = CRDRegistry().get(kind)
        if info is None:
            raise ValueError(f"unsupported kind {kind}")
        return self._api(kubernetes.client.CustomObjectsApi), info

    def list(self, kind, namespace=None, labels=None):
        """List objects of a kind, optionally scoped to a namespace and label set."""
        selector = label_selector(labels)
        if kind in BUILTIN_KINDS:
            _, api_class, suffix, namespaced = BUILTIN_KINDS[kind]
            api = self._api(api_class)
            if namespaced and namespace:
                result = getattr(api, f"list_namespaced_{suffix}")(
                    namespace, label_selector=selector
                )
            elif namespaced:
                result = getattr(api, f"list_{suffix}_for_all_namespaces")(
                    label_selector=selector
                )
            else:
                result = getattr(api, f"list_{suffix}")(label_selector=selector)
            return [self._to_dict(kind, item) for item in result.items]

        api, info = self._custom(kind)
        kwargs = {"label_selector": selector} if selector else {}
        if namespace:
            result = api.list_namespaced_custom_object(
                info["group"], info["version"], namespace, info["plural"], **kwargs
            )
        else:
            result = api.list_cluster_custom_object(
                info["group"], info["version"], info["plural"], **kwargs
            )
        items = result.get("items", [])
        for item in items:
            item.setdefault("kind", kind)
            item.setdefault("apiVersion", f"{info['group']}/{info['version']}")
        return items

    def get(self, kind, name, namespace=None):
        """Read one object, returning None when it does not exist."""
        try:
            if kind in BUILTIN_KINDS:
                _, api_class, suffix, namespaced = BUILTIN_KINDS[kind]
                api = self._api(api_class)
                if namespaced:
                    obj = getattr(api, f"read_namespaced_{suffix}")(name, namespace)
                else:
                    obj = getattr(api, f"read_{suffix}")(name)
                return self._to_dict(kind, obj)

            api, info = self._custom(kind)
            if namespace:
                return api.get_namespaced_custom_object(
                    info["group"], info["version"], namespace, info["plural"], name
                )
            return api.get_cluster_custom_object(
                info["group"], info["version"], info["plural"], name
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def create(self, kind, body):
        namespace = body.get("metadata", {}).get("namespace")
        if kind in BUILTIN_KINDS:
            _, api_class, suffix, namespaced = BUILTIN_KINDS[kind]
            api = self._api(api_class)
            if namespaced:
                obj = getattr(api, f"create_namespaced_{suffix}")(namespace, body)
            else:
                obj = getattr(api, f"create_{suffix}")(body)
            return self._to_dict(kind, obj)

        api, info = self._custom(kind)
        return api.create_namespaced_custom_object(
            info["group"], info["version"], namespace, info["plural"], body
        )

    def patch(self, kind, name, body, namespace=None):
        """Patch an object. A ``metadata.resourceVersion`` in the body acts as a precondition."""
        if kind in BUILTIN_KINDS:
            _, api_class, suffix, namespaced = BUILTIN_KINDS[kind]
            api = self._api(api_class)
            if namespaced:
                obj = getattr(api, f"patch_namespaced_{suffix}")(
                    name, namespace, body, _content_type=MERGE_PATCH
                )
            else:
                obj = getattr(api, f"patch_{suffix}")(name, body, _content_type=MERGE_PATCH)
            return self._to_dict(kind, obj)

        api, info = self._custom(kind)
        return api.patch_namespaced_custom_object(
            info["group"], info["version"], namespace, info["plural"], name, body
        )

    def delete(self, kind, name, namespace=None):
        """Delete an object. Returns False if it was already gone."""
        try:
            if kind in BUILTIN_KINDS:
                _, api_class, suffix, namespaced = BUILTIN_KINDS[kind]
                api = self._api(api_class)
                if namespaced:
                    getattr(api, f"delete_namespaced_{suffix}")(name, namespace)
                else:
                    getattr(api, f"delete_{suffix}")(name)
            else:
                api, info = self._custom(kind)
                api.delete_namespaced_custom_object(
                    info["group"], info["version"], namespace, info["plural"], name
                )
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def replace_status(self, kind, body):
        """Replace the status subresource. Fails with 409 on a stale resourceVersion."""
        api, info = self._custom(kind)
        meta = body["metadata"]
        return api.replace_namespaced_custom_object_status(
            info["group"],
            info["version"],
            meta["namespace"],
            info["plural"],
            meta["name"],
            body,
        )

    def api_resource_mapping(self):
        """Snapshot of discovery: {(group, version): [{"name", "namespaced", "group"}]}."""
        mapping = {}

        core = self._api(kubernetes.client.CoreV1Api).get_api_resources()
        mapping[("", "v1")] = [self._resource_entry(r) for r in core.resources]

        groups = self._api(kubernetes.client.ApisApi).get_api_versions()
        for group in groups.groups:
            for version in group.versions:
                try:
                    resources = self._api_client.call_api(
                        f"/apis/{group.name}/{version.version}",
                        "GET",
                        header_params={"Accept": "application/json"},
                        response_type="V1APIResourceList",
                        auth_settings=["BearerToken"],
                        _return_http_data_only=True,
                    )
                except ApiException as e:
                    logger.warning(
                        f"Discovery failed for {group.name}/{version.version}: {e.reason}"
                    )
                    continue
                mapping[(group.name, version.version)] = [
                    self._resource_entry(r) for r in resources.resources
                ]
        return mapping

    @staticmethod
    def _resource_entry(resource):
        return {
            "name": resource.name,
            "namespaced": bool(resource.namespaced),
            "group": resource.group or "",
        }
