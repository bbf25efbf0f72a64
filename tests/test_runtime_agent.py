#tests\test_runtime_agent.py

"""Test the runtime agent HTTP surface."""

import pytest
import requests
from fastapi.testclient import TestClient

from fake_docker import Script
from runtime_agent.server import create_app

OWNER = {"X-Owner-Id": "owner-1"}


@pytest.fixture
def agent(components):
    return TestClient(create_app(components))


def deploy_body(**overrides):
    body = {"app_id": "a1b2", "name": "shop", "image": "nginx:alpine", "port": 8080}
    body.update(overrides)
    return body


class TestNode:
    """Test node endpoints."""

    def test_health(self, agent):
        response = agent.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "docker_connected": True}

    def test_health_engine_down(self, agent, docker_client):
        docker_client.unreachable = True

        assert agent.get("/health").status_code == 503

    def test_info(self, agent):
        response = agent.get("/info")

        assert response.status_code == 200


class TestApps:
    """Test app endpoints."""

    def test_deploy(self, agent, docker_client):
        response = agent.post("/apps/deploy", json=deploy_body(memory="512m"), headers=OWNER)

        assert response.status_code == 200
        data = response.json()
        assert data["container_name"] == "bunker-app-a1b2"
        assert data["hostname"] == "shop.apps.bunkercorpo.com"
        container = docker_client.containers.get("bunker-app-a1b2")
        assert container.labels["bunker.owner"] == "owner-1"
        assert container.params["mem_limit"] == 512 * 1024 * 1024

    def test_get_and_lifecycle(self, agent):
        agent.post("/apps/deploy", json=deploy_body(), headers=OWNER)

        assert agent.get("/apps/a1b2", headers=OWNER).json()["state"] == "running"
        assert agent.post("/apps/a1b2/stop", headers=OWNER).json() == {"status": "ok"}
        assert agent.get("/apps/a1b2", headers=OWNER).json()["state"] == "exited"
        assert agent.post("/apps/a1b2/start", headers=OWNER).status_code == 200

    def test_logs(self, agent, docker_client):
        agent.post("/apps/deploy", json=deploy_body(), headers=OWNER)
        docker_client.containers.get("bunker-app-a1b2").log_output = b"ready\n"

        assert agent.get("/apps/a1b2/logs?lines=10", headers=OWNER).json() == {"logs": "ready\n"}

    def test_stats_unavailable(self, agent):
        agent.post("/apps/deploy", json=deploy_body(), headers=OWNER)

        assert agent.get("/apps/a1b2/stats", headers=OWNER).json() == {"stats": None}

    def test_missing_app(self, agent):
        assert agent.get("/apps/nope", headers=OWNER).status_code == 404
        assert agent.post("/apps/nope/restart", headers=OWNER).status_code == 404

    def test_delete_is_idempotent(self, agent):
        agent.post("/apps/deploy", json=deploy_body(), headers=OWNER)

        assert agent.delete("/apps/a1b2", headers=OWNER).json() == {"status": "removed", "existed": True}
        assert agent.delete("/apps/a1b2", headers=OWNER).json() == {"status": "removed", "existed": False}

    def test_invalid_name_is_400(self, agent, docker_client):
        response = agent.post("/apps/deploy", json=deploy_body(name="Not A Host"), headers=OWNER)

        assert response.status_code == 400
        assert response.json()["code"] == "CONFIGURATION_ERROR"
        assert docker_client.containers.created == []

    def test_engine_unreachable_is_503(self, agent, docker_client):
        docker_client.create_error = requests.exceptions.ConnectionError("Connection refused")

        response = agent.post("/apps/deploy", json=deploy_body(), headers=OWNER)

        assert response.status_code == 503
        assert response.json()["code"] == "ENGINE_UNAVAILABLE"


class TestDatabases:
    """Test database endpoints."""

    def test_create_returns_credentials(self, agent):
        response = agent.post("/databases", json={"name": "orders", "type": "postgres"}, headers=OWNER)

        assert response.status_code == 201
        data = response.json()
        assert data["engine"] == "postgres"
        assert data["owner_id"] == "owner-1"
        assert data["credentials"]["username"] == "bunker_user"
        assert data["credentials"]["database"] == "orders"
        assert 20000 <= data["port"] <= 30000

        snapshot = agent.get(f"/databases/{data['instance_id']}", headers=OWNER).json()
        assert snapshot["state"] == "running"

    def test_unsupported_type_is_400(self, agent):
        response = agent.post("/databases", json={"name": "orders", "type": "oracle"}, headers=OWNER)

        assert response.status_code == 400

    def test_port_collisions_are_409(self, agent, docker_client):
        docker_client.racing_ports.update(range(20000, 30001))

        response = agent.post("/databases", json={"name": "orders", "type": "postgres"}, headers=OWNER)

        assert response.status_code == 409
        assert response.json()["code"] == "PORT_COLLISION"

    def test_delete(self, agent, docker_client):
        instance = agent.post("/databases", json={"name": "cache", "type": "redis"}, headers=OWNER).json()

        response = agent.delete(f"/databases/{instance['instance_id']}", headers=OWNER)

        assert response.json()["existed"] is True
        assert docker_client.containers.names() == []

    def test_stop_missing_is_404(self, agent):
        assert agent.post("/databases/db-000000000000/stop", headers=OWNER).status_code == 404


class TestFunctions:
    """Test invocation and maintenance endpoints."""

    def test_invoke(self, agent, docker_client):
        docker_client.scripts["bunker-runtime-python311:latest"] = Script(run_seconds=0.01, output=b'{"sum": 3}\n')

        response = agent.post(
            "/functions/invoke",
            json={"function_id": "fn-add", "runtime": "python311", "payload": {"a": 1, "b": 2}},
            headers=OWNER,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "SUCCEEDED"
        assert data["output"] == {"sum": 3}
        assert data["billed_duration_ms"] >= 100

    def test_rejected_invocation_is_still_200(self, agent):
        response = agent.post("/functions/invoke", json={"function_id": "fn-add", "runtime": "cobol85"})

        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"

    def test_reap(self, agent, docker_client):
        docker_client.containers.add("bunker-fn-fn-add-0123", status="exited")

        response = agent.post("/maintenance/reap")

        assert response.json() == {"removed": 1}
