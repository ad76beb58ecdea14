"""DataPlane models."""

from typing import Dict, List, Optional

from pydantic import Field

from gatewayop.consts import OPERATOR_GROUP
from gatewayop.crd.base import CRDSpec
from gatewayop.crd.registry import CRDRegistry
from gatewayop.models.controlplane import DeploymentOptions, ExtensionRef


class ServicePort(CRDSpec):
    name: str
    port: int
    targetPort: Optional[int] = None


class IngressServiceOptions(CRDSpec):
    type: str = Field(default="LoadBalancer")
    annotations: Dict[str, str] = Field(default_factory=dict)
    ports: List[ServicePort] = Field(default_factory=list)


class DataPlaneServices(CRDSpec):
    ingress: IngressServiceOptions = Field(default_factory=IngressServiceOptions)


class DataPlaneNetwork(CRDSpec):
    services: DataPlaneServices = Field(default_factory=DataPlaneServices)


@CRDRegistry.register(OPERATOR_GROUP, "v1beta1", "DataPlane", "dataplanes")
class DataPlaneSpec(CRDSpec):
    """DataPlane specification."""

    deployment: DeploymentOptions = Field(default_factory=DeploymentOptions)
    network: DataPlaneNetwork = Field(default_factory=DataPlaneNetwork)
    extensions: List[ExtensionRef] = Field(default_factory=list)
