from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from kubernetes.client import ApiException

from membership_api.main import app
from membership_api.models import ClusterPhase, ClusterResponse
from membership_api.routers import clusters as clusters_router
from membership_api.services.cluster_service import _parse_cluster, cluster_phase
from membership_operator.config import FINALIZER

ROUTER = "membership_api.routers.clusters"


@pytest.fixture
def api_client():
    clusters_router.limiter.enabled = False
    yield TestClient(app)
    clusters_router.limiter.enabled = True


def _cluster(name="east-1", phase=ClusterPhase.JOINED):
    return ClusterResponse(name=name, phase=phase, executionSpace=f"exec-{name}")


def test_cluster_phase_from_metadata():
    assert cluster_phase({}) is ClusterPhase.PENDING
    assert cluster_phase({"finalizers": [FINALIZER]}) is ClusterPhase.JOINED
    assert cluster_phase({"finalizers": [FINALIZER], "deletionTimestamp": "2026-10-18T10:00:00Z"}) \
        is ClusterPhase.TERMINATING


def test_parse_cluster_derives_execution_space():
    parsed = _parse_cluster({
        "metadata": {"name": "east-1", "labels": {"region": "east"}, "finalizers": [FINALIZER]},
        "spec": {"apiEndpoint": "https://east-1:6443"},
        "status": {"conditions": [{"type": "Ready", "status": "True"}]},
    })
    assert parsed.executionSpace == "exec-east-1"
    assert parsed.phase is ClusterPhase.JOINED
    assert parsed.apiEndpoint == "https://east-1:6443"
    assert parsed.conditions[0].type == "Ready"


def test_register_cluster(api_client):
    with patch(f"{ROUTER}.register_cluster", return_value=_cluster(phase=ClusterPhase.PENDING)) as register:
        resp = api_client.post("/api/clusters", json={"name": "east-1", "labels": {"region": "east"}})

    assert resp.status_code == 201
    assert resp.json()["executionSpace"] == "exec-east-1"
    register.assert_called_once_with("east-1", {"region": "east"}, None)


def test_register_rejects_invalid_name(api_client):
    resp = api_client.post("/api/clusters", json={"name": "East_1"})
    assert resp.status_code == 422


def test_register_quota_exceeded(api_client):
    with patch(f"{ROUTER}.register_cluster", side_effect=ValueError("Quota exceeded")):
        resp = api_client.post("/api/clusters", json={"name": "east-1"})
    assert resp.status_code == 429


def test_list_and_get(api_client):
    with patch(f"{ROUTER}.list_clusters", return_value=[_cluster("east-1"), _cluster("west-1")]):
        resp = api_client.get("/api/clusters")
    assert resp.json()["total"] == 2

    with patch(f"{ROUTER}.get_cluster", return_value=None):
        assert api_client.get("/api/clusters/ghost").status_code == 404


def test_unregister(api_client):
    with patch(f"{ROUTER}.unregister_cluster", return_value=True):
        resp = api_client.delete("/api/clusters/east-1")
    assert resp.status_code == 202

    with patch(f"{ROUTER}.unregister_cluster", return_value=False):
        assert api_client.delete("/api/clusters/east-1").status_code == 404

    entries = api_client.get("/api/clusters/audit/log").json()["entries"]
    assert entries[-1]["action"] == "UNREGISTER"


def test_cluster_events(api_client):
    events = [{"timestamp": "t", "event": "FINALIZER_ADDED", "message": "Cluster joined", "phase": "Unjoined"}]
    with patch(f"{ROUTER}.get_cluster", return_value=_cluster()), \
            patch.object(clusters_router.events, "read", return_value=events):
        resp = api_client.get("/api/clusters/east-1/events")
    assert resp.json()["events"] == events


def test_health(api_client):
    body = api_client.get("/health").json()
    assert body["status"] == "healthy"


def test_metrics_survive_api_errors(api_client):
    with patch("membership_api.main.update_gauges", side_effect=ApiException(status=503)):
        resp = api_client.get("/metrics")
    assert resp.status_code == 200
    assert "membership_api_clusters_registered_total" in resp.text
