"""Reconcile engine components shared by the controllers."""
