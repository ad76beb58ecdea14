"""Custom resource plumbing: spec base classes and the kind registry."""

from .registry import CRDRegistry
from .base import CRDSpec

__all__ = ["CRDRegistry", "CRDSpec"]
