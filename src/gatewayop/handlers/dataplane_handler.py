"""kopf handlers for DataPlane resources."""

import logging

import kopf

from gatewayop.consts import OPERATOR_GROUP
from gatewayop.controllers.retry import retry_on_reconcile_errors
from gatewayop.handlers.common import backoff, controller, owner_stub, resync_interval

logger = logging.getLogger(__name__)

VERSION = "v1beta1"
PLURAL = "dataplanes"


def _reconcile(name, namespace, body):
    result = controller("dataplane").run_pass(name, namespace, body["metadata"]["uid"])
    if result is not None and result.changed:
        kopf.info(body, reason="Reconciled", message=f"DataPlane {name} children converged.")
    return result


@kopf.on.create(OPERATOR_GROUP, VERSION, PLURAL)
@kopf.on.update(OPERATOR_GROUP, VERSION, PLURAL)
@kopf.on.resume(OPERATOR_GROUP, VERSION, PLURAL)
@retry_on_reconcile_errors(backoff)
def dataplane_create_update(name, namespace, body, **kwargs):
    """Handle DataPlane create, update, and resume."""
    return _reconcile(name, namespace, body)


@kopf.timer(OPERATOR_GROUP, VERSION, PLURAL, interval=resync_interval(), idle=resync_interval())
@retry_on_reconcile_errors(backoff)
def dataplane_resync(name, namespace, body, **kwargs):
    return _reconcile(name, namespace, body)


# Children carry ownerReferences, so only the pass lock is released here.
@kopf.on.delete(OPERATOR_GROUP, VERSION, PLURAL, optional=True)
def dataplane_delete(name, namespace, body, meta, **kwargs):
    controller("dataplane").run_cleanup(owner_stub(body, name, namespace, meta))
