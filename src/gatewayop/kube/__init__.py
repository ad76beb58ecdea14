"""Cluster API access."""

from .client import ClusterClient, is_conflict, is_not_found, label_selector

__all__ = ["ClusterClient", "is_conflict", "is_not_found", "label_selector"]
