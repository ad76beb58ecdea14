"""kopf handler modules, imported by their controllers at startup."""
