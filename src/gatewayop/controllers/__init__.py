"""Controllers running one reconcile pass per parent kind."""

from .base import ControllerBase
from .registry import ControllerRegistry

__all__ = ["ControllerBase", "ControllerRegistry"]
