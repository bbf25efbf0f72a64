#tests\test_ports.py

"""Test host port allocation."""

import pytest

from fake_docker import ScriptedRng
from workload_engine.core.errors import ResourceExhausted
from workload_engine.network.ports import PORT_RANGE_EXHAUSTED, PortAllocator


class TestPortAllocator:
    """Test best-effort allocation."""

    def test_used_ports_come_from_all_containers(self, docker_client):
        docker_client.listed_ports = {20001, 20002}
        docker_client.containers.add("bunker-db-x", status="running", ports={"5432/tcp": 20003})
        docker_client.containers.add("bunker-app-y", status="running", ports={"3000/tcp": None})

        allocator = PortAllocator(docker_client)

        assert allocator.used_ports() == {20001, 20002, 20003}

    def test_skips_used_candidates(self, docker_client):
        docker_client.listed_ports = {20000, 20001}
        allocator = PortAllocator(docker_client, 20000, 20010, rng=ScriptedRng([20000, 20001, 20005]))

        assert allocator.allocate_port() == 20005

    def test_allocations_never_overlap_with_fixture(self, docker_client):
        """Sequential allocations with exclude never hand out the same port."""
        docker_client.listed_ports = set(range(20000, 20010)) - {20003, 20007}
        allocator = PortAllocator(docker_client, 20000, 20009, sample_attempts=4)

        first = allocator.allocate_port()
        second = allocator.allocate_port(exclude={first})

        assert {first, second} == {20003, 20007}

    def test_exhausted_range(self, docker_client):
        docker_client.listed_ports = set(range(20000, 20005))
        allocator = PortAllocator(docker_client, 20000, 20004)

        with pytest.raises(ResourceExhausted) as exc_info:
            allocator.allocate_port()

        assert exc_info.value.code == PORT_RANGE_EXHAUSTED

    def test_range_override(self, docker_client):
        allocator = PortAllocator(docker_client, rng=ScriptedRng([31000]))

        assert allocator.allocate_port(31000, 31000) == 31000

    def test_invalid_range(self, docker_client):
        with pytest.raises(ValueError):
            PortAllocator(docker_client, 30000, 20000)
