"""Manifest generation for the children the operator owns."""

from . import controlplane
from . import dataplane
from . import rbac

__all__ = ["controlplane", "dataplane", "rbac"]
