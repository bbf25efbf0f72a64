#tests\test_network.py

"""Test network provisioning."""

import threading

import pytest
import requests

from fake_docker import api_error
from workload_engine.core.errors import EngineOperationError, EngineUnavailable
from workload_engine.core.models import NetworkPlacement


class TestEnsureNetwork:
    """Test idempotent network creation."""

    def test_creates_missing_network(self, networks, docker_client):
        networks.ensure_network("apps-net", purpose="apps")

        network = docker_client.networks.get("apps-net")
        assert network.params["driver"] == "bridge"
        assert network.params["labels"] == {
            "bunker.managed": "true",
            "bunker.type": "apps-network",
        }
        assert "ipam" not in network.params

    def test_existing_network_is_left_alone(self, networks, docker_client):
        networks.ensure_network("apps-net")
        networks.ensure_network("apps-net")

        assert docker_client.networks.create_calls == 1

    def test_subnet_configures_ipam(self, networks, docker_client):
        networks.ensure_placement(NetworkPlacement("db-net", subnet="172.30.0.0/16", purpose="databases"))

        ipam = docker_client.networks.get("db-net").params["ipam"]
        assert ipam["Config"][0]["Subnet"] == "172.30.0.0/16"

    def test_concurrent_creation(self, networks, docker_client):
        """Two callers racing: one network, no errors."""
        docker_client.networks.get_barrier = threading.Barrier(2)
        errors = []

        def ensure():
            try:
                networks.ensure_network("apps-net")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=ensure) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        docker_client.networks.get_barrier = None
        assert errors == []
        assert docker_client.networks.names() == ["apps-net"]
        assert docker_client.networks.create_calls == 2

    def test_other_create_errors_propagate(self, networks, docker_client):
        def refuse(name, **kwargs):
            raise api_error(500, "plugin not found")

        docker_client.networks.create = refuse

        with pytest.raises(EngineOperationError):
            networks.ensure_network("apps-net")

    def test_unreachable_engine(self, networks, docker_client, monkeypatch):
        def unreachable(name):
            raise requests.exceptions.ConnectionError("Connection refused")

        monkeypatch.setattr(docker_client.networks, "get", unreachable)

        with pytest.raises(EngineUnavailable):
            networks.ensure_network("apps-net")
