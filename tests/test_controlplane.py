"""
End-to-end reconcile passes for ControlPlanes against the in-memory cluster.

Test Coverage:
1. Children created on the first pass, nothing written on the second
2. Replica pinning with, without and with a missing DataPlane
3. DataPlane Services wired into the controller environment
4. Admission webhook enabled, disabled operator-wide and switched off per ControlPlane
5. Watch namespaces: namespaced RBAC and missing grants
6. KonnectExtension application
7. Status on failures and cleanup of cluster-wide children
8. Edited Deployment templates kept or reverted with ENFORCE_CONFIG
"""

import pytest

from gatewayop.config import OperatorConfig
from gatewayop.controllers.controlplane import cleanup_controlplane, reconcile_controlplane
from gatewayop.controllers.dataplane import reconcile_dataplane
from gatewayop.errors import GrantMissing, InvalidSpec, ReferenceNotFound
from gatewayop.reconcile.status import get_condition

from fakes import (
    controlplane,
    dataplane,
    extension_ref,
    konnect_extension,
    ready_deployment,
    watch_namespace_grant,
)


def only(cluster, kind):
    objects = cluster.all(kind)
    assert len(objects) == 1, f"expected one {kind}, found {len(objects)}"
    return objects[0]


def controlplane_deployment(cluster):
    deployments = [
        d
        for d in cluster.all("Deployment")
        if d["metadata"]["labels"].get("gateway-operator.konghq.com/owner-kind") == "ControlPlane"
    ]
    assert len(deployments) == 1, f"expected one ControlPlane Deployment, found {len(deployments)}"
    return deployments[0]


def controller_env(deployment):
    container = next(
        c for c in deployment["spec"]["template"]["spec"]["containers"] if c["name"] == "controller"
    )
    return {e["name"]: e.get("value") for e in container.get("env", [])}


def run(cluster, config, name="cp"):
    """Reconcile the stored ControlPlane and return it as stored afterwards."""
    cp = cluster.get("ControlPlane", name, "kong")
    result = reconcile_controlplane(cluster, cp, config)
    return result, cluster.get("ControlPlane", name, "kong")


def condition(obj, condition_type):
    return get_condition(obj, condition_type) or {}


def webhook_off():
    return {
        "deployment": {
            "podTemplateSpec": {
                "spec": {
                    "containers": [
                        {
                            "name": "controller",
                            "env": [{"name": "CONTROLLER_ADMISSION_WEBHOOK_LISTEN", "value": "off"}],
                        }
                    ]
                }
            }
        }
    }


class TestFirstPass:
    """Tests for a ControlPlane without a DataPlane"""

    def test_children_created(self, cluster, config):
        """All children exist after one pass"""
        cluster.add(controlplane())
        result, cp = run(cluster, config)

        assert result.changed
        only(cluster, "ServiceAccount")
        only(cluster, "ClusterRole")
        binding = only(cluster, "ClusterRoleBinding")
        assert binding["roleRef"]["name"] == only(cluster, "ClusterRole")["metadata"]["name"]
        assert binding["subjects"][0]["name"] == only(cluster, "ServiceAccount")["metadata"]["name"]
        assert len(cluster.list("Secret", "kong")) == 2
        only(cluster, "Service")
        only(cluster, "ValidatingWebhookConfiguration")
        assert cluster.all("Role") == []

    def test_dormant_without_dataplane(self, cluster, config):
        """No DataPlane means zero replicas and NoDataPlane"""
        cluster.add(controlplane(spec={"deployment": {"replicas": 3}}))
        _, cp = run(cluster, config)

        deployment = controlplane_deployment(cluster)
        assert deployment["spec"]["replicas"] == 0
        assert "CONTROLLER_PUBLISH_SERVICE" not in controller_env(deployment)
        assert condition(cp, "Provisioned")["status"] == "False"
        assert condition(cp, "Provisioned")["reason"] == "NoDataPlane"
        assert condition(cp, "WatchNamespaceGrantValid")["status"] == "True"
        assert cp["status"]["observedGeneration"] == 1

    def test_deployment_wiring(self, cluster, config):
        """The Deployment mounts the admin and webhook certificates and runs as the ServiceAccount"""
        cluster.add(controlplane())
        run(cluster, config)

        deployment = controlplane_deployment(cluster)
        pod = deployment["spec"]["template"]["spec"]
        assert pod["serviceAccountName"] == only(cluster, "ServiceAccount")["metadata"]["name"]
        secret_names = {s["metadata"]["name"] for s in cluster.list("Secret", "kong")}
        mounted = {v["secret"]["secretName"] for v in pod["volumes"]}
        assert mounted == secret_names
        assert pod["containers"][0]["image"] == config.controlplane_default_image
        env = controller_env(deployment)
        assert env["CONTROLLER_ADMISSION_WEBHOOK_LISTEN"] == "0.0.0.0:8080"
        assert "CONTROLLER_WATCH_NAMESPACE" not in env

    def test_second_pass_writes_nothing(self, cluster, config):
        """A converged ControlPlane is left alone"""
        cluster.add(controlplane())
        run(cluster, config)
        cluster.reset_calls()

        result, _ = run(cluster, config)
        assert not result.changed
        assert cluster.writes() == []

    def test_webhook_configuration(self, cluster, config):
        """The webhook configuration points at the webhook Service with the CA bundle"""
        cluster.add(controlplane())
        run(cluster, config)

        configuration = only(cluster, "ValidatingWebhookConfiguration")
        service = only(cluster, "Service")
        client_config = configuration["webhooks"][0]["clientConfig"]
        assert client_config["service"] == {
            "namespace": "kong",
            "name": service["metadata"]["name"],
            "port": 443,
        }
        assert client_config["caBundle"]
        assert "ownerReferences" not in configuration["metadata"]


class TestDataPlane:
    """Tests for a ControlPlane configuring a DataPlane"""

    def setup_dataplane(self, cluster, config):
        dp = cluster.add(dataplane())
        reconcile_dataplane(cluster, dp, config)

    def test_scaled_up_with_dataplane(self, cluster, config):
        """Setting a DataPlane scales to the declared replicas and publishes its Service"""
        self.setup_dataplane(cluster, config)
        cluster.add(controlplane(spec={"dataplane": "dp", "deployment": {"replicas": 2}}))
        _, cp = run(cluster, config)

        deployment = controlplane_deployment(cluster)
        assert deployment["spec"]["replicas"] == 2
        dp_status = cluster.get("DataPlane", "dp", "kong")["status"]
        env = controller_env(deployment)
        assert env["CONTROLLER_PUBLISH_SERVICE"] == f"kong/{dp_status['service']}"
        assert env["CONTROLLER_KONG_ADMIN_SVC"] == f"kong/{dp_status['adminService']}"
        assert condition(cp, "Provisioned")["reason"] == "PodsNotReady"

    def test_dataplane_set_later(self, cluster, config):
        """A dormant ControlPlane is scaled up once its DataPlane is set"""
        self.setup_dataplane(cluster, config)
        cluster.add(controlplane(name="cp"))
        run(cluster, config)
        assert controlplane_deployment(cluster)["spec"]["replicas"] == 0

        cluster.patch("ControlPlane", "cp", {"spec": {"dataplane": "dp"}}, "kong")
        result, _ = run(cluster, config)
        assert result.changed
        assert controlplane_deployment(cluster)["spec"]["replicas"] == 1

    def test_provisioned_when_ready(self, cluster, config):
        """Provisioned turns True once the pods are ready"""
        self.setup_dataplane(cluster, config)
        cluster.add(controlplane(spec={"dataplane": "dp"}))
        _, cp = run(cluster, config)
        ready_deployment(cluster, cp)

        _, cp = run(cluster, config)
        assert condition(cp, "Provisioned")["status"] == "True"
        assert condition(cp, "Provisioned")["reason"] == "Provisioned"

    def test_missing_dataplane(self, cluster, config):
        """A DataPlane that does not exist keeps the ControlPlane at zero replicas"""
        cluster.add(controlplane(spec={"dataplane": "missing", "deployment": {"replicas": 2}}))
        _, cp = run(cluster, config)

        assert condition(cp, "Provisioned")["status"] == "False"
        assert condition(cp, "Provisioned")["reason"] == "NoDataPlane"
        assert "kong/missing not found" in condition(cp, "Provisioned")["message"]
        deployment = controlplane_deployment(cluster)
        assert deployment["spec"]["replicas"] == 0
        assert "CONTROLLER_PUBLISH_SERVICE" not in controller_env(deployment)

    def test_missing_dataplane_created_later(self, cluster, config):
        """Once the referenced DataPlane exists the ControlPlane scales up"""
        cluster.add(controlplane(spec={"dataplane": "dp", "deployment": {"replicas": 2}}))
        run(cluster, config)
        assert controlplane_deployment(cluster)["spec"]["replicas"] == 0

        self.setup_dataplane(cluster, config)
        result, cp = run(cluster, config)
        assert result.changed
        deployment = controlplane_deployment(cluster)
        assert deployment["spec"]["replicas"] == 2
        assert "CONTROLLER_PUBLISH_SERVICE" in controller_env(deployment)
        assert condition(cp, "Provisioned")["reason"] == "PodsNotReady"


class TestDriftEnforcement:
    """Tests for edits made to the Deployment by others"""

    def tamper(self, cluster):
        deployment = controlplane_deployment(cluster)
        stored = cluster.stored("Deployment", deployment["metadata"]["name"], "kong")
        stored["spec"]["template"]["spec"]["containers"][0]["image"] = "edited:1"

    def test_drift_kept_by_default(self, cluster, config):
        """Without enforcement an unchanged fingerprint leaves the template alone"""
        cluster.add(controlplane())
        run(cluster, config)
        self.tamper(cluster)

        result, _ = run(cluster, config)
        assert not result.changed
        assert controlplane_deployment(cluster)["spec"]["template"]["spec"]["containers"][0][
            "image"
        ] == "edited:1"

    def test_drift_reverted_when_enforced(self, cluster):
        """ENFORCE_CONFIG restores the generated template on the next pass"""
        config = OperatorConfig(enforce_config=True)
        cluster.add(controlplane())
        run(cluster, config)
        self.tamper(cluster)

        result, _ = run(cluster, config)
        assert result.changed
        container = controlplane_deployment(cluster)["spec"]["template"]["spec"]["containers"][0]
        assert container["image"] == config.controlplane_default_image

        cluster.reset_calls()
        result, _ = run(cluster, config)
        assert not result.changed
        assert cluster.writes() == []

    def test_dataplane_drift_reverted_when_enforced(self, cluster):
        """DataPlane Deployments are enforced the same way"""
        config = OperatorConfig(enforce_config=True)
        dp = cluster.add(dataplane())
        reconcile_dataplane(cluster, dp, config)
        (deployment,) = cluster.all("Deployment")
        stored = cluster.stored("Deployment", deployment["metadata"]["name"], "kong")
        stored["spec"]["template"]["spec"]["containers"][0]["image"] = "edited:1"

        reconcile_dataplane(cluster, cluster.get("DataPlane", "dp", "kong"), config)
        (deployment,) = cluster.all("Deployment")
        assert deployment["spec"]["template"]["spec"]["containers"][0]["image"] == "kong:3.9"


class TestWebhook:
    """Tests for enabling and disabling the admission webhook"""

    def test_disabled_operator_wide(self, cluster):
        """No webhook children when the operator disables the webhook"""
        cluster.add(controlplane())
        run(cluster, OperatorConfig(enable_validating_webhook=False))

        assert cluster.all("ValidatingWebhookConfiguration") == []
        assert cluster.all("Service") == []
        assert len(cluster.list("Secret", "kong")) == 1
        assert "CONTROLLER_ADMISSION_WEBHOOK_LISTEN" not in controller_env(controlplane_deployment(cluster))

    def test_switched_off_later(self, cluster, config):
        """Turning the webhook off removes its Service, Secret and configuration"""
        cluster.add(controlplane())
        run(cluster, config)
        assert len(cluster.list("Secret", "kong")) == 2

        cluster.patch("ControlPlane", "cp", {"spec": webhook_off()}, "kong")
        run(cluster, config)

        assert cluster.all("ValidatingWebhookConfiguration") == []
        assert cluster.all("Service") == []
        assert len(cluster.list("Secret", "kong")) == 1
        deployment = controlplane_deployment(cluster)
        assert controller_env(deployment)["CONTROLLER_ADMISSION_WEBHOOK_LISTEN"] == "off"
        assert "admission-webhook-certificate" not in {
            v["name"] for v in deployment["spec"]["template"]["spec"]["volumes"]
        }


class TestWatchNamespaces:
    """Tests for ControlPlanes watching a namespace list"""

    def test_roles_in_granted_namespaces(self, cluster, config):
        """Namespaced permissions move into Roles, the rest stays in the ClusterRole"""
        cluster.add(watch_namespace_grant("team-a", "kong"))
        cluster.add(controlplane(spec={"watchNamespaces": {"type": "list", "list": ["team-a"]}}))
        run(cluster, config)

        assert sorted(r["metadata"]["namespace"] for r in cluster.all("Role")) == ["kong", "team-a"]
        assert len(cluster.all("RoleBinding")) == 2
        cluster_rules = only(cluster, "ClusterRole")["rules"]
        assert not any("secrets" in rule.get("resources", []) for rule in cluster_rules)
        assert any("namespaces" in rule.get("resources", []) for rule in cluster_rules)
        env = controller_env(controlplane_deployment(cluster))
        assert env["CONTROLLER_WATCH_NAMESPACE"] == "team-a,kong"

    def test_back_to_all_namespaces(self, cluster, config):
        """Watching every namespace again removes the Roles"""
        cluster.add(controlplane(spec={"watchNamespaces": {"type": "own"}}))
        run(cluster, config)
        assert len(cluster.all("Role")) == 1

        cluster.patch("ControlPlane", "cp", {"spec": {"watchNamespaces": {"type": "all"}}}, "kong")
        run(cluster, config)
        assert cluster.all("Role") == []
        assert cluster.all("RoleBinding") == []

    def test_missing_grant(self, cluster, config):
        """A namespace without a grant fails the pass and is reported"""
        cluster.add(controlplane(spec={"watchNamespaces": {"type": "list", "list": ["team-a"]}}))
        with pytest.raises(GrantMissing):
            run(cluster, config)

        cp = cluster.get("ControlPlane", "cp", "kong")
        assert condition(cp, "WatchNamespaceGrantValid")["status"] == "False"
        assert condition(cp, "WatchNamespaceGrantValid")["reason"] == "GrantMissing"


class TestKonnect:
    """Tests for KonnectExtensions referenced by a ControlPlane"""

    def test_extension_applied(self, cluster, config):
        """A ready extension turns on Konnect sync"""
        cluster.add(
            konnect_extension(
                status={
                    "conditions": [{"type": "Ready", "status": "True", "reason": "Ready"}],
                    "konnect": {"controlPlaneID": "cp-1234"},
                    "dataPlaneClientAuth": {"certificateSecretRef": {"name": "konnect-cert"}},
                }
            )
        )
        cluster.add(controlplane(spec={"extensions": [extension_ref()]}))
        _, cp = run(cluster, config)

        env = controller_env(controlplane_deployment(cluster))
        assert env["CONTROLLER_KONNECT_SYNC_ENABLED"] == "true"
        assert env["CONTROLLER_KONNECT_CONTROL_PLANE_ID"] == "cp-1234"
        assert condition(cp, "KonnectExtensionApplied")["status"] == "True"

    def test_extension_missing(self, cluster, config):
        """A missing extension is reported on the ControlPlane"""
        cluster.add(controlplane(spec={"extensions": [extension_ref()]}))
        with pytest.raises(ReferenceNotFound):
            run(cluster, config)

        cp = cluster.get("ControlPlane", "cp", "kong")
        assert condition(cp, "KonnectExtensionApplied")["reason"] == "ExtensionNotFound"

    def test_cross_namespace_extension(self, cluster, config):
        """Extensions in another namespace are rejected"""
        cluster.add(controlplane(spec={"extensions": [extension_ref(namespace="other")]}))
        with pytest.raises(InvalidSpec):
            run(cluster, config)


class TestFailuresAndCleanup:
    """Tests for invalid specs and deletion"""

    def test_unsupported_image(self, cluster, config):
        """An image below the minimum version is an invalid spec"""
        spec = {
            "deployment": {
                "podTemplateSpec": {
                    "spec": {
                        "containers": [
                            {"name": "controller", "image": "kong/kubernetes-ingress-controller:2.12"}
                        ]
                    }
                }
            }
        }
        cluster.add(controlplane(spec=spec))
        with pytest.raises(InvalidSpec):
            run(cluster, config)

        cp = cluster.get("ControlPlane", "cp", "kong")
        assert condition(cp, "Provisioned")["status"] == "False"

    def test_invalid_replicas(self, cluster, config):
        """A spec the model rejects is an invalid spec"""
        cluster.add(controlplane(spec={"deployment": {"replicas": -1}}))
        with pytest.raises(InvalidSpec):
            run(cluster, config)

    def test_cleanup(self, cluster, config):
        """Cluster-wide children and Roles are removed on deletion"""
        cluster.add(watch_namespace_grant("team-a", "kong"))
        cluster.add(controlplane(spec={"watchNamespaces": {"type": "list", "list": ["team-a"]}}))
        _, cp = run(cluster, config)

        cleanup_controlplane(cluster, cp)
        for kind in (
            "ValidatingWebhookConfiguration",
            "ClusterRoleBinding",
            "ClusterRole",
            "RoleBinding",
            "Role",
        ):
            assert cluster.all(kind) == [], kind
