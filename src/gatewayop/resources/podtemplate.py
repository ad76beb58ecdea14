""" Helpers for merging user pod templates over generated ones.
"""

import copy

from kubernetes.utils import parse_quantity

# Lists merged element-wise by "name"; every other list in the user template
# replaces the generated one.
NAME_KEYED_LISTS = {
    "containers",
    "initContainers",
    "env",
    "volumes",
    "volumeMounts",
    "ports",
    "imagePullSecrets",
}


def _merge_named(base, override):
    merged = [copy.deepcopy(item) for item in base]
    index = {item.get("name"): i for i, item in enumerate(merged)}
    for item in override:
        name = item.get("name")
        if name in index:
            merged[index[name]] = merge_pod_template(merged[index[name]], item)
        else:
            merged.append(copy.deepcopy(item))
    return merged


def merge_pod_template(base, override):
    """ Deep merge ``override`` into a copy of ``base``; the override wins.

    Args:
        base: Generated pod template (or any nested part of it)
        override: User supplied template fragment
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        return copy.deepcopy(override)

    result = copy.deepcopy(base)
    for key, value in override.items():
        if value is None:
            continue
        if key in NAME_KEYED_LISTS and isinstance(value, list) and isinstance(result.get(key), list):
            result[key] = _merge_named(result[key], value)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_pod_template(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def get_container(pod_template, name):
    """Return the named container from a pod template (or pod spec), or None."""
    if not pod_template:
        return None
    spec = pod_template.get("spec", pod_template)
    for container in spec.get("containers") or []:
        if container.get("name") == name:
            return container
    return None


def env_value(container, name):
    for env in (container or {}).get("env") or []:
        if env.get("name") == name:
            return env.get("value", "")
    return ""


def set_env(container, name, value):
    env = container.setdefault("env", [])
    for item in env:
        if item.get("name") == name:
            item.pop("valueFrom", None)
            item["value"] = value
            return container
    env.append({"name": name, "value": value})
    return container


def reject_env(container, name):
    container["env"] = [e for e in container.get("env") or [] if e.get("name") != name]
    return container


def _canonical_quantity(value):
    # str() keeps floats like 0.1 exact once they become a Decimal
    number = parse_quantity(str(value))
    if number == number.to_integral_value():
        return str(int(number))
    return str(number.normalize())


def normalize_resources(pod_template):
    """Rewrite numeric container requests/limits as canonical strings (2.0 -> '2')."""
    spec = pod_template.get("spec") or {}
    for container in (spec.get("containers") or []) + (spec.get("initContainers") or []):
        resources = container.get("resources") or {}
        for section in ("requests", "limits"):
            values = resources.get(section)
            if not values:
                continue
            for key, quantity in values.items():
                if isinstance(quantity, (int, float)) or _is_plain_number(quantity):
                    values[key] = _canonical_quantity(quantity)
    return pod_template


def _is_plain_number(text):
    try:
        float(str(text))
        return True
    except ValueError:
        return False
