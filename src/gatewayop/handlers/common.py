"""Lookups shared by the kopf handler modules."""

from gatewayop.config import OperatorConfig
from gatewayop.controllers.registry import ControllerRegistry


def controller(name):
    return ControllerRegistry().get_controller(name)


def config():
    return ControllerRegistry().config or OperatorConfig()


def backoff():
    return config().backoff


def resync_interval():
    return config().resync_interval


def owner_stub(body, name, namespace, meta):
    """Enough of a parent object to find its children by owner labels."""
    return {
        "apiVersion": body["apiVersion"],
        "kind": body["kind"],
        "metadata": {"name": name, "namespace": namespace, "uid": meta["uid"]},
    }
