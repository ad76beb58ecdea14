"""kopf handlers for KonnectExtension resources."""

import logging

import kopf

from gatewayop.consts import KONNECT_GROUP
from gatewayop.controllers.retry import retry_on_reconcile_errors
from gatewayop.handlers.common import backoff, controller, owner_stub, resync_interval

logger = logging.getLogger(__name__)

VERSION = "v1alpha1"
PLURAL = "konnectextensions"


def _reconcile(name, namespace, body):
    result = controller("konnectextension").run_pass(name, namespace, body["metadata"]["uid"])
    if result is not None and result.changed:
        kopf.info(body, reason="Reconciled", message=f"KonnectExtension {name} status updated.")
    return result


@kopf.on.create(KONNECT_GROUP, VERSION, PLURAL)
@kopf.on.update(KONNECT_GROUP, VERSION, PLURAL)
@kopf.on.resume(KONNECT_GROUP, VERSION, PLURAL)
@retry_on_reconcile_errors(backoff)
def konnect_extension_create_update(name, namespace, body, **kwargs):
    """Handle KonnectExtension create, update, and resume."""
    return _reconcile(name, namespace, body)


# Dependents and the referenced control plane change without touching the extension.
@kopf.timer(KONNECT_GROUP, VERSION, PLURAL, interval=resync_interval(), idle=resync_interval())
@retry_on_reconcile_errors(backoff)
def konnect_extension_resync(name, namespace, body, **kwargs):
    return _reconcile(name, namespace, body)


@kopf.on.delete(KONNECT_GROUP, VERSION, PLURAL, optional=True)
def konnect_extension_delete(name, namespace, body, meta, **kwargs):
    controller("konnectextension").run_cleanup(owner_stub(body, name, namespace, meta))
