"""Pydantic models for all custom resources."""

# Import all models to ensure they're registered
from . import controlplane
from . import dataplane
from . import konnect

__all__ = ["controlplane", "dataplane", "konnect"]
