"""kopf handlers for ControlPlane resources."""

import logging

import kopf

from gatewayop.consts import OPERATOR_GROUP
from gatewayop.controllers.retry import retry_on_reconcile_errors
from gatewayop.handlers.common import backoff, controller, owner_stub, resync_interval

logger = logging.getLogger(__name__)

VERSION = "v1beta1"
PLURAL = "controlplanes"


def _reconcile(name, namespace, body):
    result = controller("controlplane").run_pass(name, namespace, body["metadata"]["uid"])
    if result is not None and result.changed:
        kopf.info(body, reason="Reconciled", message=f"ControlPlane {name} children converged.")
    return result


@kopf.on.create(OPERATOR_GROUP, VERSION, PLURAL)
@kopf.on.update(OPERATOR_GROUP, VERSION, PLURAL)
@kopf.on.resume(OPERATOR_GROUP, VERSION, PLURAL)
@retry_on_reconcile_errors(backoff)
def controlplane_create_update(name, namespace, body, **kwargs):
    """Handle ControlPlane create, update, and resume (on operator restart)."""
    return _reconcile(name, namespace, body)


@kopf.timer(OPERATOR_GROUP, VERSION, PLURAL, interval=resync_interval(), idle=resync_interval())
@retry_on_reconcile_errors(backoff)
def controlplane_resync(name, namespace, body, **kwargs):
    """Periodic pass picking up changes to DataPlanes, grants and extensions."""
    return _reconcile(name, namespace, body)


@kopf.on.delete(OPERATOR_GROUP, VERSION, PLURAL)
def controlplane_delete(name, namespace, body, meta, **kwargs):
    """Remove cluster-scoped children, which garbage collection does not reach."""
    controller("controlplane").run_cleanup(owner_stub(body, name, namespace, meta))
    kopf.info(body, reason="CleanedUp", message=f"ControlPlane {name} cluster-wide resources deleted.")
