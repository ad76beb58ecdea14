"""
Unit tests for conditions, status writes and KonnectGatewayControlPlane resolution.

Test Coverage:
1. set_condition ordering, transition times and change detection
2. update_status_if_changed: skip, write, conflict
3. ensure_extendable_refs_in_status
4. resolve_konnect_control_plane for both reference types
5. Konnect cluster type mapping
"""

from unittest.mock import patch

import pytest

from gatewayop.errors import InvalidSpec, ReferenceNotFound, ReferenceNotProgrammed, StatusConflict
from gatewayop.reconcile.status import (
    default_cluster_type_lookup,
    ensure_extendable_refs_in_status,
    get_condition,
    konnect_cluster_type_to_crd,
    remove_condition,
    resolve_konnect_control_plane,
    set_condition,
    update_status_if_changed,
)

from fakes import (
    FakeCluster,
    dataplane,
    konnect_extension,
    konnect_gateway_control_plane,
)


def applied(obj, status="True"):
    obj["status"] = {
        "conditions": [{"type": "KonnectExtensionApplied", "status": status, "reason": "x"}]
    }
    return obj


class TestConditions:
    """Tests for condition helpers"""

    def test_sorted_by_type(self):
        """Conditions are kept sorted by type"""
        obj = {"metadata": {"generation": 3}}
        set_condition(obj, "Ready", True, "Ready")
        set_condition(obj, "Provisioned", False, "NoDataPlane", "no DataPlane")

        assert [c["type"] for c in obj["status"]["conditions"]] == ["Provisioned", "Ready"]
        provisioned = get_condition(obj, "Provisioned")
        assert provisioned["status"] == "False"
        assert provisioned["observedGeneration"] == 3

    def test_unchanged_condition(self):
        """Setting the same condition twice reports no change"""
        obj = {"metadata": {}}
        assert set_condition(obj, "Ready", True, "Ready", "ok")
        assert not set_condition(obj, "Ready", True, "Ready", "ok")

    def test_transition_time_kept_for_same_status(self):
        """Only a status flip moves lastTransitionTime"""
        obj = {"metadata": {}}
        with patch("gatewayop.reconcile.status._now", return_value="2024-01-01T00:00:00Z"):
            set_condition(obj, "Ready", False, "NotReady", "starting")
        with patch("gatewayop.reconcile.status._now", return_value="2024-01-02T00:00:00Z"):
            assert set_condition(obj, "Ready", False, "NotReady", "still starting")
            assert get_condition(obj, "Ready")["lastTransitionTime"] == "2024-01-01T00:00:00Z"

            set_condition(obj, "Ready", True, "Ready", "done")
            assert get_condition(obj, "Ready")["lastTransitionTime"] == "2024-01-02T00:00:00Z"

    def test_remove(self):
        """Removing reports whether the condition was present"""
        obj = {"metadata": {}}
        set_condition(obj, "Ready", True, "Ready")
        assert remove_condition(obj, "Ready")
        assert not remove_condition(obj, "Ready")
        assert get_condition(obj, "Ready") is None


class TestStatusWrites:
    """Tests for update_status_if_changed"""

    def test_unchanged_status_not_written(self):
        """Equal status means no API call"""
        fake = FakeCluster()
        dp = fake.add({**dataplane(), "status": {"replicas": 1}})

        assert update_status_if_changed(fake, "DataPlane", dp, {"replicas": 1}) is None
        assert fake.writes() == []

    def test_changed_status_written(self):
        """A different status replaces the stored one"""
        fake = FakeCluster()
        dp = fake.add(dataplane())

        updated = update_status_if_changed(fake, "DataPlane", dp, {"replicas": 2})
        assert updated["status"] == {"replicas": 2}
        assert fake.stored("DataPlane", "dp", "kong")["status"] == {"replicas": 2}

    def test_conflict(self):
        """A stale read becomes StatusConflict"""
        fake = FakeCluster()
        dp = fake.add(dataplane())
        fake.patch("DataPlane", "dp", {"metadata": {"labels": {"a": "b"}}}, namespace="kong")

        with pytest.raises(StatusConflict):
            update_status_if_changed(fake, "DataPlane", dp, {"replicas": 2})


class TestExtendableRefs:
    """Tests for listing dependents in KonnectExtension status"""

    def test_only_applied_dependents_listed(self):
        """Dependents are listed sorted, when the extension is applied to them"""
        fake = FakeCluster()
        ext = fake.add(konnect_extension())
        dataplanes = [
            applied(dataplane(name="z")),
            applied(dataplane(name="a")),
            applied(dataplane(name="pending"), status="False"),
        ]

        result = ensure_extendable_refs_in_status(fake, ext, dataplanes, [])
        assert result.changed and not result.requeue
        assert fake.stored("KonnectExtension", "konnect", "kong")["status"]["dataPlaneRefs"] == [
            {"name": "a", "namespace": "kong"},
            {"name": "z", "namespace": "kong"},
        ]
        # ext now reflects the write, so a second call is a no-op
        result = ensure_extendable_refs_in_status(fake, ext, dataplanes, [])
        assert not result.changed

    def test_conflict_requeues(self):
        """A concurrent write is reported as a requeue"""
        fake = FakeCluster()
        ext = fake.add(konnect_extension())
        fake.patch("KonnectExtension", "konnect", {"metadata": {"labels": {"a": "b"}}}, "kong")

        result = ensure_extendable_refs_in_status(fake, ext, [applied(dataplane())], [])
        assert result.requeue


class TestResolveKonnectControlPlane:
    """Tests for resolve_konnect_control_plane"""

    def test_namespaced_ref(self):
        """A programmed control plane in the same namespace resolves"""
        fake = FakeCluster()
        fake.add(konnect_gateway_control_plane())
        ext = konnect_extension()

        kgcp = resolve_konnect_control_plane(fake, ext)
        assert kgcp["status"]["id"] == "cp-1234"
        assert get_condition(ext, "ControlPlaneRefValid")["status"] == "True"

    def test_not_found(self):
        """A missing control plane invalidates the reference"""
        ext = konnect_extension()
        with pytest.raises(ReferenceNotFound):
            resolve_konnect_control_plane(FakeCluster(), ext)
        assert get_condition(ext, "ControlPlaneRefValid")["status"] == "False"

    def test_not_programmed(self):
        """A control plane that is not Programmed is not usable yet"""
        fake = FakeCluster()
        fake.add(konnect_gateway_control_plane(programmed=False))
        ext = konnect_extension()
        with pytest.raises(ReferenceNotProgrammed):
            resolve_konnect_control_plane(fake, ext)
        assert get_condition(ext, "ControlPlaneRefValid")["reason"] == "Invalid"

    def test_konnect_id_ref(self):
        """konnectID references match on the control plane's status id"""
        fake = FakeCluster()
        fake.add(konnect_gateway_control_plane(name="other", konnect_id="nope"))
        fake.add(konnect_gateway_control_plane(name="mine", konnect_id="cp-42"))
        ext = konnect_extension(
            spec={"konnect": {"controlPlane": {"ref": {"type": "konnectID", "konnectID": "cp-42"}}}}
        )
        assert resolve_konnect_control_plane(fake, ext)["metadata"]["name"] == "mine"

    def test_unknown_ref_type(self):
        """Unknown reference types are invalid"""
        ext = konnect_extension(spec={"konnect": {"controlPlane": {"ref": {"type": "byMagic"}}}})
        with pytest.raises(InvalidSpec):
            resolve_konnect_control_plane(FakeCluster(), ext)


class TestClusterType:
    """Tests for Konnect cluster type mapping"""

    @pytest.mark.parametrize(
        "cluster_type,expected",
        [
            (None, "ControlPlane"),
            ("CLUSTER_TYPE_CONTROL_PLANE", "ControlPlane"),
            ("CLUSTER_TYPE_K8S_INGRESS_CONTROLLER", "K8SIngressController"),
            ("CLUSTER_TYPE_SERVERLESS", ""),
        ],
    )
    def test_mapping(self, cluster_type, expected):
        assert konnect_cluster_type_to_crd(cluster_type) == expected

    def test_default_lookup(self):
        """The requested cluster type is read from the control plane spec"""
        kgcp = konnect_gateway_control_plane(
            spec={"createControlPlaneRequest": {"cluster_type": "CLUSTER_TYPE_K8S_INGRESS_CONTROLLER"}}
        )
        assert default_cluster_type_lookup(kgcp) == "CLUSTER_TYPE_K8S_INGRESS_CONTROLLER"
