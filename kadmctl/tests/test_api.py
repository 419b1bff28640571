"""
Test kadmctl.api
"""
import pytest
from fastapi.testclient import TestClient

from kadmctl.api.main import app
from kadmctl.config import Config
from kadmctl.modules import cluster
from kadmctl.modules.kubeadm import CredentialFetchError, PartialCleanupError

API_KEY = "test-key"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(Config, "API_KEY", API_KEY)
    with TestClient(app) as test_client:
        yield test_client


def test_rejects_missing_key(client):
    response = client.post("/join", json={"clusterfile": "Clusterfile", "masters": ["10.0.0.2"]})
    assert response.status_code == 403


def test_delete_reports_partial_failures(client, monkeypatch):
    def fake_delete(path, masters=(), nodes=()):
        return {'10.0.0.2': PartialCleanupError("cleanup_host failed", host='10.0.0.2')}

    monkeypatch.setattr(cluster, "delete_from_cluster", fake_delete)
    response = client.post(
        "/delete",
        json={"clusterfile": "Clusterfile", "masters": ["10.0.0.2"]},
        headers={"X-API-Key": API_KEY},
    )
    assert response.status_code == 200
    assert response.json()["partial_failures"] == {"10.0.0.2": "[host=10.0.0.2] cleanup_host failed"}


def test_operation_error_is_500(client, monkeypatch):
    def fake_join(path, masters=(), nodes=()):
        raise CredentialFetchError("failed to get certificate key", host='10.0.0.1', stage='fetch_join_credentials')

    monkeypatch.setattr(cluster, "join_cluster", fake_join)
    response = client.post(
        "/join",
        json={"clusterfile": "Clusterfile", "masters": ["10.0.0.2"]},
        headers={"X-API-Key": API_KEY},
    )
    assert response.status_code == 500
    assert response.json()["host"] == "10.0.0.1"
    assert "failed to get certificate key" in response.json()["detail"]


def test_missing_clusterfile_is_400(client, tmp_path):
    response = client.post(
        "/init",
        json={"clusterfile": str(tmp_path / "missing")},
        headers={"X-API-Key": API_KEY},
    )
    assert response.status_code == 400
