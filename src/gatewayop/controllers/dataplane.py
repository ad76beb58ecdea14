"""DataPlane reconciliation: Deployment, admin and ingress Services, status."""

import copy
import logging

from pydantic import ValidationError

from gatewayop.consts import (
    CONDITION_READY,
    DATAPLANE_CONTAINER_NAME,
    REASON_NOT_READY,
    REASON_READY,
    SERVICE_KIND_ADMIN,
    SERVICE_KIND_INGRESS,
    SERVICE_KIND_LABEL,
)
from gatewayop.controllers.base import ControllerBase
from gatewayop.controllers.controlplane import deployment_ready
from gatewayop.controllers.extensions import apply_konnect_extension, as_hash_input
from gatewayop.crd.registry import CRDRegistry
from gatewayop.errors import DependencyNotReady, InvalidSpec
from gatewayop.reconcile.owned import DEPLOYMENT, SERVICE, reconcile_owned
from gatewayop.reconcile.status import ReconcileResult, set_condition, update_status_if_changed
from gatewayop.resources.dataplane import generate_dataplane_deployment, generate_dataplane_services
from gatewayop.resources.images import resolve_image
from gatewayop.resources.ownership import owner_match_labels

logger = logging.getLogger(__name__)

KIND = "DataPlane"


def parse_spec(dp):
    try:
        return CRDRegistry().parse_spec(KIND, dp)
    except ValidationError as e:
        raise InvalidSpec(f"invalid DataPlane spec: {e}") from e


def deployment_hash_input(spec, image, konnect=None):
    """Values the DataPlane Deployment is generated from.

    ``network`` only shapes the Services, so editing it leaves the
    Deployment fingerprint alone.
    """
    return {
        "spec": spec.model_dump(mode="json", by_alias=True, exclude={"network"}),
        "image": image,
        "konnect": as_hash_input(konnect),
    }


def _reconcile(cluster, dp, working, spec, config):
    konnect = apply_konnect_extension(cluster, dp, working, spec.extensions)
    image = resolve_image(
        spec.deployment.podTemplateSpec,
        DATAPLANE_CONTAINER_NAME,
        config.dataplane_default_image,
        validate=config.validate_images,
    )

    changed = False
    services = {}
    for service_kind, desired in zip(
        (SERVICE_KIND_ADMIN, SERVICE_KIND_INGRESS), generate_dataplane_services(dp, spec)
    ):
        result, services[service_kind] = reconcile_owned(
            cluster,
            dp,
            SERVICE,
            desired,
            match_labels={**owner_match_labels(dp), SERVICE_KIND_LABEL: service_kind},
        )
        changed = changed or result.changed

    deployment = generate_dataplane_deployment(dp, spec, image, konnect)
    result, deployment = reconcile_owned(
        cluster,
        dp,
        DEPLOYMENT,
        deployment,
        enforce=config.enforce_config,
        hash_input=deployment_hash_input(spec, image, konnect),
    )
    changed = changed or result.changed

    status = working["status"]
    status["service"] = services[SERVICE_KIND_INGRESS]["metadata"]["name"]
    status["adminService"] = services[SERVICE_KIND_ADMIN]["metadata"]["name"]
    deployment_status = deployment.get("status") or {}
    status["replicas"] = deployment_status.get("replicas") or 0
    status["readyReplicas"] = deployment_status.get("readyReplicas") or 0

    if deployment_ready(deployment):
        set_condition(working, CONDITION_READY, True, REASON_READY, "pods are ready")
    else:
        set_condition(
            working,
            CONDITION_READY,
            False,
            REASON_NOT_READY,
            f"{status['readyReplicas']} pods of Deployment "
            f"{deployment['metadata']['name']} ready",
        )
    return ReconcileResult(changed=changed)


def reconcile_dataplane(cluster, dp, config):
    """Run one reconcile pass for a DataPlane."""
    spec = parse_spec(dp)
    working = copy.deepcopy(dp)
    working.setdefault("status", {})

    try:
        result = _reconcile(cluster, dp, working, spec, config)
    except (DependencyNotReady, InvalidSpec) as e:
        set_condition(working, CONDITION_READY, False, REASON_NOT_READY, str(e))
        update_status_if_changed(cluster, KIND, dp, working["status"])
        raise

    working["status"]["observedGeneration"] = dp["metadata"].get("generation")
    update_status_if_changed(cluster, KIND, dp, working["status"])
    return result


class DataPlaneController(ControllerBase):
    """Reconciles DataPlanes into a proxy Deployment and its Services."""

    @property
    def name(self):
        return "dataplane"

    @property
    def kind(self):
        return KIND

    @property
    def handler_module(self):
        return "gatewayop.handlers.dataplane_handler"

    @property
    def models(self):
        from gatewayop.models.dataplane import DataPlaneSpec

        return [DataPlaneSpec]

    def reconcile(self, obj):
        return reconcile_dataplane(self.cluster, obj, self.config)
