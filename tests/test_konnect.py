"""
Reconcile passes for KonnectExtensions against the in-memory cluster.

Test Coverage:
1. Ready extension with an automatically issued client certificate
2. Cluster type lookup
3. Manual certificate provisioning, present and missing
4. Control plane reference failures
5. Dependent references in status
"""

import pytest

from gatewayop.controllers.konnect import reconcile_konnect_extension
from gatewayop.errors import ReferenceNotFound, ReferenceNotProgrammed, SecretNotFound
from gatewayop.reconcile.status import get_condition

from fakes import (
    dataplane,
    extension_ref,
    konnect_extension,
    konnect_gateway_control_plane,
)

MANUAL_SPEC = {
    "konnect": {
        "controlPlane": {
            "ref": {"type": "konnectNamespacedRef", "konnectNamespacedRef": {"name": "kgcp"}}
        }
    },
    "clientAuth": {
        "certificateSecret": {
            "provisioning": "Manual",
            "certificateSecretRef": {"name": "my-client-cert"},
        }
    },
}


def run(cluster, config, **kwargs):
    ext = cluster.get("KonnectExtension", "konnect", "kong")
    result = reconcile_konnect_extension(cluster, ext, config, **kwargs)
    return result, cluster.get("KonnectExtension", "konnect", "kong")


class TestReadyExtension:
    """Tests for an extension whose control plane is programmed"""

    def test_ready(self, cluster, config):
        """The extension reports the control plane and its client certificate"""
        cluster.add(konnect_gateway_control_plane())
        cluster.add(konnect_extension())
        result, ext = run(cluster, config)

        assert result.changed
        status = ext["status"]
        assert status["konnect"]["controlPlaneID"] == "cp-1234"
        assert status["konnect"]["clusterType"] == "ControlPlane"
        assert status["konnect"]["endpoints"]["controlPlaneEndpoint"] == "https://abc.cp0.konghq.com"

        (secret,) = cluster.list("Secret", "kong")
        assert status["dataPlaneClientAuth"]["certificateSecretRef"]["name"] == secret["metadata"]["name"]
        assert get_condition(ext, "Ready")["status"] == "True"
        assert get_condition(ext, "ControlPlaneRefValid")["status"] == "True"
        assert get_condition(ext, "DataPlaneCertificateProvisioned")["status"] == "True"

    def test_idempotent(self, cluster, config):
        """A second pass writes nothing"""
        cluster.add(konnect_gateway_control_plane())
        cluster.add(konnect_extension())
        run(cluster, config)
        cluster.reset_calls()

        result, _ = run(cluster, config)
        assert not result.changed
        assert cluster.writes() == []

    def test_cluster_type_lookup(self, cluster, config):
        """The cluster type comes from the lookup"""
        cluster.add(konnect_gateway_control_plane())
        cluster.add(konnect_extension())
        _, ext = run(
            cluster, config, cluster_type_lookup=lambda kgcp: "CLUSTER_TYPE_K8S_INGRESS_CONTROLLER"
        )
        assert ext["status"]["konnect"]["clusterType"] == "K8SIngressController"


class TestManualCertificate:
    """Tests for user provided client certificates"""

    def test_manual_secret(self, cluster, config):
        """The referenced Secret is used and issued ones are removed"""
        cluster.add(konnect_gateway_control_plane())
        cluster.add(konnect_extension())
        run(cluster, config)
        assert len(cluster.list("Secret", "kong")) == 1

        cluster.add({"kind": "Secret", "metadata": {"name": "my-client-cert", "namespace": "kong"}})
        cluster.patch("KonnectExtension", "konnect", {"spec": MANUAL_SPEC}, "kong")
        _, ext = run(cluster, config)

        assert [s["metadata"]["name"] for s in cluster.list("Secret", "kong")] == ["my-client-cert"]
        assert ext["status"]["dataPlaneClientAuth"]["certificateSecretRef"]["name"] == "my-client-cert"

    def test_manual_secret_missing(self, cluster, config):
        """A missing manual Secret is reported and the extension is not ready"""
        cluster.add(konnect_gateway_control_plane())
        cluster.add(konnect_extension(spec=MANUAL_SPEC))

        with pytest.raises(SecretNotFound):
            run(cluster, config)

        ext = cluster.get("KonnectExtension", "konnect", "kong")
        assert get_condition(ext, "DataPlaneCertificateProvisioned")["reason"] == "SecretNotFound"
        assert get_condition(ext, "Ready")["status"] == "False"


class TestControlPlaneReference:
    """Tests for control plane reference failures"""

    def test_missing_control_plane(self, cluster, config):
        """A missing control plane leaves the extension not ready"""
        cluster.add(konnect_extension())
        with pytest.raises(ReferenceNotFound):
            run(cluster, config)

        ext = cluster.get("KonnectExtension", "konnect", "kong")
        assert get_condition(ext, "ControlPlaneRefValid")["status"] == "False"
        assert get_condition(ext, "Ready")["status"] == "False"
        assert cluster.list("Secret", "kong") == []

    def test_not_programmed(self, cluster, config):
        """A control plane that is not programmed leaves the extension not ready"""
        cluster.add(konnect_gateway_control_plane(programmed=False))
        cluster.add(konnect_extension())
        with pytest.raises(ReferenceNotProgrammed):
            run(cluster, config)


class TestDependents:
    """Tests for DataPlane and ControlPlane references in status"""

    def test_applied_dataplanes_listed(self, cluster, config):
        """DataPlanes the extension is applied to are listed"""
        cluster.add(konnect_gateway_control_plane())
        cluster.add(konnect_extension())
        dp = dataplane(name="dp-a", spec={"extensions": [extension_ref()]})
        dp["status"] = {
            "conditions": [{"type": "KonnectExtensionApplied", "status": "True", "reason": "x"}]
        }
        cluster.add(dp)
        cluster.add(dataplane(name="unrelated"))

        _, ext = run(cluster, config)
        assert ext["status"]["dataPlaneRefs"] == [{"name": "dp-a", "namespace": "kong"}]
        assert ext["status"]["controlPlaneRefs"] == []
        assert get_condition(ext, "Ready")["status"] == "True"
