# workload_engine/lifecycle/manager.py
"""
Container lifecycle manager.

Drives create / start / stop / restart / delete for long-running resources,
keyed by logical identity. The engine is the only source of truth: the
container is always looked up again by its deterministic name.

Deploy ordering: the prior container is stopped and removed before the new
one is created, never the reverse, so a crash mid-deploy leaves either the
previous container or nothing - never two running instances.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from docker.errors import DockerException, NotFound

from workload_engine.core.errors import PartialFailure, ResourceExhausted
from workload_engine.core.events import MultiEventEmitter, NullEventEmitter
from workload_engine.core.events_model import LifecycleEvent
from workload_engine.core.labels import ownership_labels
from workload_engine.core.models import (
    ContainerSnapshot,
    DeploySpec,
    ExposedPort,
    LogicalResource,
)
from workload_engine.core.naming import resource_container_name
from workload_engine.engine.best_effort import best_effort
from workload_engine.engine.client import engine_call, translate_engine_error
from workload_engine.lifecycle.locks import ResourceLockRegistry
from workload_engine.network.ports import PORT_COLLISION
from workload_engine.network.provisioner import NetworkProvisioner

logger = logging.getLogger(__name__)

_PORT_CLASH_MARKERS = ("port is already allocated", "address already in use")
_FRACTION = re.compile(r"\.(\d{6})\d*")


def _parse_created(value: Optional[str]) -> Optional[datetime]:
    """Engine timestamps carry nanoseconds; datetime keeps microseconds."""
    if not value:
        return None
    text = _FRACTION.sub(r".\1", value.replace("Z", "+00:00"))
    try:
        created = datetime.fromisoformat(text)
    except ValueError:
        return None
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


def snapshot_from_attrs(attrs: Dict[str, Any]) -> ContainerSnapshot:
    """Normalize an engine inspect payload."""
    state = attrs.get("State") or {}
    health = (state.get("Health") or {}).get("Status")

    ports = []
    bindings_by_key = (attrs.get("NetworkSettings") or {}).get("Ports") or {}
    for key, bindings in bindings_by_key.items():
        internal, _, protocol = key.partition("/")
        external = None
        if bindings and bindings[0].get("HostPort"):
            external = int(bindings[0]["HostPort"])
        ports.append(ExposedPort(int(internal), external, protocol or "tcp"))

    return ContainerSnapshot(
        id=attrs.get("Id", ""),
        name=(attrs.get("Name") or "").lstrip("/"),
        run_status=state.get("Status", "unknown"),
        health_status=health,
        ports=ports,
        created_at=_parse_created(attrs.get("Created")),
        labels=(attrs.get("Config") or {}).get("Labels") or {},
    )


def _is_port_collision(error: Exception) -> bool:
    text = str(getattr(error, "explanation", None) or error).lower()
    return any(marker in text for marker in _PORT_CLASH_MARKERS)


class ContainerLifecycleManager:
    """
    State machine per logical resource:

        absent -> create -> created -> start -> running <-> stopped -> delete -> absent

    redeploy = delete-if-exists; create; start, serialized per resource.
    """

    def __init__(
        self,
        client,
        networks: NetworkProvisioner,
        locks: Optional[ResourceLockRegistry] = None,
        emitters: Optional[MultiEventEmitter] = None,
        stop_timeout: int = 10,
    ):
        self._client = client
        self._networks = networks
        self._locks = locks or ResourceLockRegistry()
        self._emitters = emitters or MultiEventEmitter([NullEventEmitter()])
        self._stop_timeout = stop_timeout

    # -------------------------
    # DEPLOY
    # -------------------------

    def deploy(self, spec: DeploySpec) -> str:
        """
        Create-or-replace the container of a logical resource.

        Steps:
        1. Ensure the target network exists
        2. Stop + remove the prior container, if any (absence is fine)
        3. Pull the image (failure logged, a local image may do)
        4. Create with limits, ports, labels and health probe
        5. Start, then attach to the network (already attached is fine)

        Returns:
            Engine-assigned container ID
        """
        name = resource_container_name(spec.resource)

        with self._locks.hold(name):
            self._networks.ensure_placement(spec.placement)

            if self._remove_existing(name):
                logger.info(f"[{name}] Removed previous container")

            self._pull_image(name, spec.image)

            params = self.build_create_params(spec)
            container = self._create_and_start(name, spec.image, params)

            self._connect_network(name, container, spec.placement.name)

        logger.info(f"[{name}] ✅ Deployed container {container.id[:12]}")
        self._emit(LifecycleEvent.container_deployed(name, container.id, spec.image))
        return container.id

    def build_create_params(self, spec: DeploySpec) -> Dict[str, Any]:
        """containers.create() keyword arguments for a deploy spec."""
        labels = dict(spec.labels)
        # Ownership labels are mandatory and win over caller labels
        labels.update(ownership_labels(spec.resource))

        params: Dict[str, Any] = {
            "name": resource_container_name(spec.resource),
            "environment": dict(spec.environment),
            "labels": labels,
            "network": spec.placement.name,
            "restart_policy": {"Name": spec.restart_policy},
        }
        params.update(spec.limits.to_docker_options())

        if spec.command:
            params["command"] = spec.command
        if spec.ports:
            params["ports"] = {port.key: port.external_port for port in spec.ports}
        if spec.publish_all_ports:
            params["publish_all_ports"] = True
        if spec.health_probe:
            params["healthcheck"] = spec.health_probe.to_docker()

        return params

    def _remove_existing(self, name: str) -> bool:
        with engine_call(f"lookup {name}"):
            try:
                existing = self._client.containers.get(name)
            except NotFound:
                return False

        best_effort(
            f"[{name}] stop previous container",
            existing.stop,
            timeout=self._stop_timeout,
            swallow_all=True,
        )
        with engine_call(f"remove {name}"):
            best_effort(f"[{name}] remove previous container", existing.remove, force=True)
        return True

    def _pull_image(self, name: str, image: str) -> None:
        try:
            self._client.images.pull(image)
            logger.info(f"[{name}] Pulled image: {image}")
        except (DockerException, requests.exceptions.RequestException) as e:
            failure = PartialFailure(f"Failed to pull image {image}: {e}")
            logger.warning(f"[{name}] {failure.code}: {failure} (continuing with local image)")

    def _create_and_start(self, name: str, image: str, params: Dict[str, Any]):
        with engine_call(f"create {name}"):
            container = self._client.containers.create(image, **params)
        logger.info(f"[{name}] Created container {container.id[:12]}")

        try:
            container.start()
        except BaseException as e:
            # Never leave a half-created container behind
            best_effort(
                f"[{name}] remove container that failed to start",
                container.remove,
                force=True,
                swallow_all=True,
            )
            if isinstance(e, (DockerException, requests.exceptions.RequestException)):
                if _is_port_collision(e):
                    raise ResourceExhausted(
                        f"Host port collision starting {name}: {e}",
                        code=PORT_COLLISION,
                    ) from e
                raise translate_engine_error(e, f"start {name}") from e
            raise

        return container

    def _connect_network(self, name: str, container, network_name: str) -> None:
        try:
            self._client.networks.get(network_name).connect(container.id)
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.debug(f"[{name}] Network connect skipped: {e}")

    # -------------------------
    # PASS-THROUGH TRANSITIONS
    # -------------------------

    def start(self, resource: LogicalResource) -> None:
        name = resource_container_name(resource)
        with engine_call(f"start {name}"):
            self._client.containers.get(name).start()
        logger.info(f"[{name}] Started")

    def stop(self, resource: LogicalResource) -> None:
        name = resource_container_name(resource)
        with engine_call(f"stop {name}"):
            self._client.containers.get(name).stop(timeout=self._stop_timeout)
        logger.info(f"[{name}] Stopped")

    def restart(self, resource: LogicalResource, reason: str = "requested") -> None:
        name = resource_container_name(resource)
        with engine_call(f"restart {name}"):
            self._client.containers.get(name).restart(timeout=self._stop_timeout)
        logger.info(f"[{name}] Restarted")
        self._emit(LifecycleEvent.container_restarted(name, reason))

    # -------------------------
    # DELETE
    # -------------------------

    def delete(self, resource: LogicalResource, remove_volumes: bool = False) -> bool:
        """
        Stop (ignoring failure) then force-remove.

        Returns:
            True if a container was removed, False if it was already absent
        """
        name = resource_container_name(resource)

        with self._locks.hold(name):
            with engine_call(f"lookup {name}"):
                try:
                    container = self._client.containers.get(name)
                except NotFound:
                    logger.debug(f"[{name}] Already absent")
                    self._emit(LifecycleEvent.container_deleted(name, existed=False))
                    return False

            best_effort(f"[{name}] stop", container.stop, timeout=self._stop_timeout, swallow_all=True)
            with engine_call(f"remove {name}"):
                best_effort(f"[{name}] remove", container.remove, force=True, v=remove_volumes)

        logger.info(f"[{name}] Deleted")
        self._emit(LifecycleEvent.container_deleted(name, existed=True))
        return True

    # -------------------------
    # READS
    # -------------------------

    def inspect(self, resource: LogicalResource) -> Optional[ContainerSnapshot]:
        """Snapshot of the resource's container, or None when absent."""
        name = resource_container_name(resource)
        with engine_call(f"inspect {name}"):
            try:
                container = self._client.containers.get(name)
            except NotFound:
                return None
        return snapshot_from_attrs(container.attrs)

    def status(self, resource: LogicalResource) -> str:
        """Run status, or 'absent'."""
        snapshot = self.inspect(resource)
        return snapshot.run_status if snapshot else "absent"

    def logs(self, resource: LogicalResource, tail: int = 100, timestamps: bool = True) -> str:
        """Combined stdout/stderr, drained. Empty string when absent."""
        name = resource_container_name(resource)
        with engine_call(f"logs {name}"):
            try:
                container = self._client.containers.get(name)
                raw = container.logs(stdout=True, stderr=True, tail=tail, timestamps=timestamps)
            except NotFound:
                return ""
        if isinstance(raw, (bytes, bytearray)):
            return raw.decode("utf-8", errors="replace")
        return str(raw)

    def _emit(self, event: LifecycleEvent) -> None:
        self._emitters.emit([event])
