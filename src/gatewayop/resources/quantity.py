"""Value comparison of Kubernetes resource quantities.

Parsing is done by ``kubernetes.utils.parse_quantity``, which understands the
binary (Ki, Mi, ...) and decimal (m, k, M, ...) suffixes and returns a Decimal.
"""

from kubernetes.utils import parse_quantity


def quantities_equal(left, right):
    try:
        return parse_quantity(left) == parse_quantity(right)
    except ValueError:
        return str(left) == str(right)


def resource_requirements_equal(left, right):
    """Compare two ResourceRequirements dicts by value."""
    left = left or {}
    right = right or {}
    for section in ("requests", "limits"):
        lvals = left.get(section) or {}
        rvals = right.get(section) or {}
        if set(lvals) != set(rvals):
            return False
        for name, quantity in lvals.items():
            if not quantities_equal(quantity, rvals[name]):
                return False
    return True
