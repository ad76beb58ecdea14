"""Shared fixtures: an in-memory cluster holding a throwaway cluster CA."""

import pytest

# Registers the custom resource kinds
import gatewayop.models  # noqa: F401
from gatewayop.config import OperatorConfig

from fakes import FakeCluster, ca_secret, make_ca


@pytest.fixture(scope="session")
def ca_pair():
    return make_ca()


@pytest.fixture
def config():
    return OperatorConfig()


@pytest.fixture
def discovery():
    """Discovery snapshot covering the resources the controller rules name."""
    return {
        ("", "v1"): [
            {"name": "configmaps", "namespaced": True, "group": ""},
            {"name": "endpoints", "namespaced": True, "group": ""},
            {"name": "events", "namespaced": True, "group": ""},
            {"name": "namespaces", "namespaced": False, "group": ""},
            {"name": "nodes", "namespaced": False, "group": ""},
            {"name": "pods", "namespaced": True, "group": ""},
            {"name": "secrets", "namespaced": True, "group": ""},
            {"name": "services", "namespaced": True, "group": ""},
            {"name": "services/status", "namespaced": True, "group": ""},
        ],
        ("coordination.k8s.io", "v1"): [
            {"name": "leases", "namespaced": True, "group": ""},
        ],
        ("networking.k8s.io", "v1"): [
            {"name": "ingresses", "namespaced": True, "group": ""},
            {"name": "ingressclasses", "namespaced": False, "group": ""},
        ],
    }


@pytest.fixture
def cluster(ca_pair, discovery):
    fake = FakeCluster(discovery=discovery)
    fake.add(ca_secret(*ca_pair))
    fake.reset_calls()
    return fake
