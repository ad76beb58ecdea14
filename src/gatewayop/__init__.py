"""Kubernetes operator reconciling Kong ControlPlanes, DataPlanes and KonnectExtensions."""

__version__ = "0.1.0"
