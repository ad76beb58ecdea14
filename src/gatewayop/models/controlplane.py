"""ControlPlane and WatchNamespaceGrant models."""

from typing import Any, Dict, List, Optional

from pydantic import Field

from gatewayop.consts import OPERATOR_GROUP
from gatewayop.crd.base import CRDSpec
from gatewayop.crd.registry import CRDRegistry

WATCH_NAMESPACES_ALL = "all"
WATCH_NAMESPACES_OWN = "own"
WATCH_NAMESPACES_LIST = "list"


class DeploymentOptions(CRDSpec):
    """Deployment knobs shared by ControlPlane and DataPlane."""

    replicas: Optional[int] = Field(default=1, ge=0)
    podTemplateSpec: Optional[Dict[str, Any]] = Field(
        default=None, description="Pod template merged over the generated one"
    )


class WatchNamespaces(CRDSpec):
    type: str = Field(default=WATCH_NAMESPACES_ALL)
    list: List[str] = Field(default_factory=list)


class ExtensionRef(CRDSpec):
    group: str
    kind: str
    name: str
    namespace: Optional[str] = None


@CRDRegistry.register(OPERATOR_GROUP, "v1beta1", "ControlPlane", "controlplanes")
class ControlPlaneSpec(CRDSpec):
    """ControlPlane specification."""

    dataplane: Optional[str] = Field(
        default=None, description="Name of the DataPlane this ControlPlane configures"
    )
    deployment: DeploymentOptions = Field(default_factory=DeploymentOptions)
    watchNamespaces: Optional[WatchNamespaces] = Field(default_factory=WatchNamespaces)
    extensions: List[ExtensionRef] = Field(default_factory=list)


class WatchNamespaceGrantFrom(CRDSpec):
    group: str
    kind: str
    namespace: str


@CRDRegistry.register(
    OPERATOR_GROUP, "v1alpha1", "WatchNamespaceGrant", "watchnamespacegrants"
)
class WatchNamespaceGrantSpec(CRDSpec):
    """Grant letting ControlPlanes from other namespaces watch this namespace."""

    from_: List[WatchNamespaceGrantFrom] = Field(default_factory=list, alias="from")
