"""Registry mapping custom resource kinds to their API coordinates and spec models."""

import logging

logger = logging.getLogger(__name__)


class CRDRegistry:
    """Global registry of the custom resource kinds the operator reads and writes."""

    _instance = None
    _initialised = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._models = {}
            cls._instance._initialised = False
        return cls._instance

    def __init__(self):
        if not self._initialised:
            self._models = {}
            self._initialised = True

    @classmethod
    def register(cls, group, version, kind, plural=None, scope="Namespaced"):
        """Decorator to register a spec model for a custom resource kind.

        Args:
            group: API group (e.g., 'gateway-operator.konghq.com')
            version: API version (e.g., 'v1beta1')
            kind: Kind name (e.g., 'ControlPlane')
            plural: Plural name (defaults to kind.lower() + 's')
            scope: 'Namespaced' or 'Cluster'
        """

        def decorator(model_class):
            model_class._crd_group = group
            model_class._crd_version = version
            model_class._crd_kind = kind
            model_class._crd_plural = plural or f"{kind.lower()}s"
            model_class._crd_scope = scope

            registry_instance = cls()
            registry_instance._models[kind] = {
                "model": model_class,
                "group": group,
                "version": version,
                "kind": kind,
                "plural": model_class._crd_plural,
                "scope": scope,
            }

            logger.debug(f"Registered CRD: {group}/{version}/{kind}")
            return model_class

        return decorator

    def get(self, kind):
        """Get the registration for a kind, or None."""
        return self._models.get(kind)

    def api_version(self, kind):
        info = self._models[kind]
        return f"{info['group']}/{info['version']}"

    def parse_spec(self, kind, obj):
        """Parse the ``spec`` of a custom object dict into its registered model."""
        info = self._models[kind]
        return info["model"].model_validate(obj.get("spec") or {})
