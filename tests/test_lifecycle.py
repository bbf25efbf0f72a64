#tests\test_lifecycle.py

"""Test container lifecycle manager."""

import threading

import pytest

from fake_docker import api_error
from workload_engine.core.errors import EngineOperationError, ResourceExhausted, ResourceNotFound
from workload_engine.core.models import (
    DeploySpec,
    ExposedPort,
    HealthProbe,
    LogicalResource,
    NetworkPlacement,
    ResourceKind,
)
from workload_engine.lifecycle.manager import snapshot_from_attrs
from workload_engine.network.ports import PORT_COLLISION
from workload_engine.resources.limits import ResourceLimits

WEB_1 = LogicalResource("owner-1", "web-1", ResourceKind.APP)


def make_spec(memory="256m", cpus="0.25", **overrides) -> DeploySpec:
    params = dict(
        resource=WEB_1,
        image="nginx:alpine",
        limits=ResourceLimits.from_strings(memory, cpus),
        placement=NetworkPlacement("apps-net", purpose="apps"),
        ports=[ExposedPort(3000)],
        publish_all_ports=True,
        environment={"PORT": "3000"},
    )
    params.update(overrides)
    return DeploySpec(**params)


class TestDeploy:
    """Test create-or-replace."""

    def test_first_deploy(self, lifecycle, docker_client):
        """256m / 0.25 cores -> exact engine limits, running."""
        container_id = lifecycle.deploy(make_spec())

        container = docker_client.containers.get("bunker-app-web-1")
        assert container.id == container_id
        assert container.params["mem_limit"] == 268435456
        assert container.params["nano_cpus"] == 250_000_000
        assert lifecycle.inspect(WEB_1).run_status == "running"

    def test_redeploy_replaces_container(self, lifecycle, docker_client):
        """Second deploy wins; exactly one container bound to the name."""
        lifecycle.deploy(make_spec(memory="256m"))
        first = docker_client.containers.get("bunker-app-web-1")

        lifecycle.deploy(make_spec(memory="512m"))

        assert first.stop_calls == 1
        assert not docker_client.containers.contains(first)
        assert docker_client.containers.names() == ["bunker-app-web-1"]
        current = docker_client.containers.get("bunker-app-web-1")
        assert current.params["mem_limit"] == 536870912

    def test_concurrent_deploys_leave_one_container(self, lifecycle, docker_client):
        errors = []

        def deploy(memory):
            try:
                lifecycle.deploy(make_spec(memory=memory))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=deploy, args=(m,)) for m in ("256m", "512m", "1g")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert docker_client.containers.names() == ["bunker-app-web-1"]
        assert docker_client.containers.get("bunker-app-web-1").status == "running"

    def test_create_params(self, lifecycle):
        spec = make_spec(
            labels={"bunker.owner": "spoofed", "custom": "yes"},
            health_probe=HealthProbe(http_path="/health", http_port=3000, interval_seconds=10),
            command=["node", "server.js"],
        )

        params = lifecycle.build_create_params(spec)

        assert params["name"] == "bunker-app-web-1"
        assert params["network"] == "apps-net"
        assert params["restart_policy"] == {"Name": "unless-stopped"}
        assert params["ports"] == {"3000/tcp": None}
        assert params["publish_all_ports"] is True
        assert params["command"] == ["node", "server.js"]
        assert params["labels"]["bunker.managed"] == "true"
        assert params["labels"]["bunker.owner"] == "owner-1"
        assert params["labels"]["bunker.kind"] == "app"
        assert params["labels"]["bunker.resource_id"] == "web-1"
        assert params["labels"]["custom"] == "yes"
        assert params["healthcheck"] == {
            "test": ["CMD-SHELL", "wget -qO- http://127.0.0.1:3000/health || exit 1"],
            "interval": 10_000_000_000,
            "timeout": 5_000_000_000,
            "retries": 3,
            "start_period": 30_000_000_000,
        }

    def test_network_is_created_and_connected(self, lifecycle, docker_client):
        container_id = lifecycle.deploy(make_spec())

        assert docker_client.networks.get("apps-net").connected == [container_id]

    def test_pull_failure_is_not_fatal(self, lifecycle, docker_client):
        docker_client.images.pull_failures.add("nginx:alpine")

        lifecycle.deploy(make_spec())

        assert docker_client.containers.get("bunker-app-web-1").status == "running"

    def test_stuck_prior_stop_does_not_block_redeploy(self, lifecycle, docker_client):
        lifecycle.deploy(make_spec())
        docker_client.stop_error = api_error(500, "cannot kill container")

        lifecycle.deploy(make_spec(memory="512m"))

        assert docker_client.containers.names() == ["bunker-app-web-1"]

    def test_start_failure_removes_half_created_container(self, lifecycle, docker_client):
        docker_client.start_error = api_error(500, "OCI runtime create failed")

        with pytest.raises(EngineOperationError):
            lifecycle.deploy(make_spec())

        assert docker_client.containers.names() == []

    def test_port_clash_at_start(self, lifecycle, docker_client):
        docker_client.racing_ports.add(25000)

        with pytest.raises(ResourceExhausted) as exc_info:
            lifecycle.deploy(make_spec(ports=[ExposedPort(5432, 25000)]))

        assert exc_info.value.code == PORT_COLLISION
        assert docker_client.containers.names() == []

    def test_emits_deployed_event(self, lifecycle, recorder):
        container_id = lifecycle.deploy(make_spec())

        events = recorder.of_type("container.deployed")
        assert len(events) == 1
        assert events[0].subject == "bunker-app-web-1"
        assert events[0].metadata["container_id"] == container_id


class TestTransitions:
    """Test start / stop / restart pass-through."""

    def test_stop_then_start(self, lifecycle):
        lifecycle.deploy(make_spec())

        lifecycle.stop(WEB_1)
        assert lifecycle.status(WEB_1) == "exited"

        lifecycle.start(WEB_1)
        assert lifecycle.status(WEB_1) == "running"

    def test_restart(self, lifecycle, docker_client, recorder):
        lifecycle.deploy(make_spec())

        lifecycle.restart(WEB_1, reason="manual")

        assert docker_client.containers.get("bunker-app-web-1").restart_calls == 1
        assert recorder.of_type("container.restarted")[0].metadata == {"reason": "manual"}

    def test_transition_on_absent_resource(self, lifecycle):
        with pytest.raises(ResourceNotFound):
            lifecycle.start(WEB_1)


class TestDelete:
    """Test idempotent delete."""

    def test_delete_running_container(self, lifecycle, docker_client):
        lifecycle.deploy(make_spec())

        assert lifecycle.delete(WEB_1) is True
        assert docker_client.containers.names() == []

    def test_delete_absent_is_success(self, lifecycle, recorder):
        assert lifecycle.delete(WEB_1) is False
        assert recorder.of_type("container.deleted")[0].metadata == {"existed": False}

    def test_delete_twice(self, lifecycle):
        lifecycle.deploy(make_spec())

        assert lifecycle.delete(WEB_1) is True
        assert lifecycle.delete(WEB_1) is False

    def test_delete_removes_volumes_when_asked(self, lifecycle, docker_client):
        lifecycle.deploy(make_spec())
        container = docker_client.containers.get("bunker-app-web-1")

        lifecycle.delete(WEB_1, remove_volumes=True)

        assert container.removed_volumes is True

    def test_delete_propagates_unrelated_errors(self, lifecycle, docker_client, monkeypatch):
        lifecycle.deploy(make_spec())
        container = docker_client.containers.get("bunker-app-web-1")

        def refuse(force=False, v=False):
            raise api_error(500, "device or resource busy")

        monkeypatch.setattr(container, "remove", refuse)

        with pytest.raises(EngineOperationError):
            lifecycle.delete(WEB_1)


class TestReads:
    """Test inspect / logs."""

    def test_inspect_absent(self, lifecycle):
        assert lifecycle.inspect(WEB_1) is None
        assert lifecycle.status(WEB_1) == "absent"

    def test_inspect_snapshot(self, lifecycle):
        container_id = lifecycle.deploy(make_spec(ports=[ExposedPort(5432, 25432)]))

        snapshot = lifecycle.inspect(WEB_1)

        assert snapshot.id == container_id
        assert snapshot.name == "bunker-app-web-1"
        assert snapshot.state == "running"
        assert snapshot.ports[0].internal_port == 5432
        assert snapshot.ports[0].external_port == 25432
        assert snapshot.created_at is not None

    def test_health_status_wins_state(self):
        snapshot = snapshot_from_attrs({
            "Id": "abc",
            "Name": "/bunker-app-web-1",
            "State": {"Status": "running", "Health": {"Status": "unhealthy"}},
            "Created": "2024-05-01T10:00:00.123456789Z",
        })

        assert snapshot.run_status == "running"
        assert snapshot.state == "unhealthy"
        assert snapshot.created_at.microsecond == 123456

    def test_logs(self, lifecycle, docker_client):
        lifecycle.deploy(make_spec())
        docker_client.containers.get("bunker-app-web-1").log_output = b"listening on 3000\n"

        assert lifecycle.logs(WEB_1) == "listening on 3000\n"

    def test_logs_absent(self, lifecycle):
        assert lifecycle.logs(WEB_1) == ""
