"""KonnectExtension and KonnectGatewayControlPlane models."""

from typing import Optional

from pydantic import Field

from gatewayop.consts import KONNECT_GROUP
from gatewayop.crd.base import CRDSpec
from gatewayop.crd.registry import CRDRegistry

REF_TYPE_NAMESPACED = "konnectNamespacedRef"
REF_TYPE_KONNECT_ID = "konnectID"

PROVISIONING_MANUAL = "Manual"
PROVISIONING_AUTOMATIC = "Automatic"


class NameRef(CRDSpec):
    name: str


class ControlPlaneRef(CRDSpec):
    type: str = Field(default=REF_TYPE_NAMESPACED)
    konnectNamespacedRef: Optional[NameRef] = None
    konnectID: Optional[str] = None


class KonnectControlPlane(CRDSpec):
    ref: ControlPlaneRef


class KonnectConfiguration(CRDSpec):
    authRef: NameRef


class KonnectOptions(CRDSpec):
    controlPlane: KonnectControlPlane
    configuration: Optional[KonnectConfiguration] = None


class CertificateSecret(CRDSpec):
    provisioning: str = Field(default=PROVISIONING_AUTOMATIC)
    certificateSecretRef: Optional[NameRef] = None


class ClientAuth(CRDSpec):
    certificateSecret: CertificateSecret = Field(default_factory=CertificateSecret)


@CRDRegistry.register(KONNECT_GROUP, "v1alpha1", "KonnectExtension", "konnectextensions")
class KonnectExtensionSpec(CRDSpec):
    """KonnectExtension specification."""

    konnect: KonnectOptions
    clientAuth: ClientAuth = Field(default_factory=ClientAuth)


class KonnectEndpoints(CRDSpec):
    controlPlaneEndpoint: Optional[str] = None
    telemetryEndpoint: Optional[str] = None


@CRDRegistry.register(
    KONNECT_GROUP, "v1alpha1", "KonnectGatewayControlPlane", "konnectgatewaycontrolplanes"
)
class KonnectGatewayControlPlaneSpec(CRDSpec):
    """Only the fields the operator reads from a KonnectGatewayControlPlane."""

    name: Optional[str] = None
    createControlPlaneRequest: Optional[dict] = None
