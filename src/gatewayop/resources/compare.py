"""Value comparison between desired manifests and observed objects.

The API server fills in defaults (``protocol: TCP``, ``terminationMessagePath``
and so on), so observed objects are compared as supersets of the desired ones:
every field the operator sets must match, fields it does not set are ignored.
Resource requirements are compared by quantity value.
"""

from gatewayop.resources.quantity import resource_requirements_equal


def semantically_equal(desired, observed):
    if isinstance(desired, dict):
        if not isinstance(observed, dict):
            return False
        for key, value in desired.items():
            if value is None:
                continue
            if key == "resources" and isinstance(value, dict):
                if not resource_requirements_equal(value, observed.get("resources")):
                    return False
                continue
            if key not in observed or not semantically_equal(value, observed[key]):
                return False
        return True

    if isinstance(desired, list):
        if not isinstance(observed, list) or len(desired) != len(observed):
            return False
        return all(semantically_equal(d, o) for d, o in zip(desired, observed))

    return desired == observed


def get_path(obj, path):
    """Read a dotted path (``spec.template``) from a nested dict."""
    current = obj
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def set_path(obj, path, value):
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value
    return obj


def merge_patch_value(desired, observed):
    """Value that turns ``observed`` into ``desired`` under JSON merge patch.

    Keys only ``observed`` has are set to None so the server drops them.
    """
    if not isinstance(desired, dict) or not isinstance(observed, dict):
        return desired
    patch = {key: merge_patch_value(value, observed.get(key)) for key, value in desired.items()}
    for key in observed:
        if key not in desired:
            patch[key] = None
    return patch
