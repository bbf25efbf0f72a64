# workload_engine/health_monitor/monitor.py
"""
Health Monitor - watches managed long-running containers and restarts
unhealthy ones.

Runs as a separate process and checks every 10 seconds by default. The
probe itself runs inside the container (engine healthcheck); this service
only reads the engine's verdict, so no host ports need to be reachable.
"""

import logging
import signal
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from workload_engine.core.errors import WorkloadError
from workload_engine.core.labels import KIND_LABEL, MANAGED_LABEL, OWNER_LABEL, RESOURCE_LABEL
from workload_engine.core.models import LogicalResource, ResourceKind
from workload_engine.engine.client import engine_call
from workload_engine.lifecycle.manager import ContainerLifecycleManager

logger = logging.getLogger(__name__)

MONITORED_KINDS = {ResourceKind.APP.value, ResourceKind.DATABASE.value}


@dataclass
class HealthRecord:
    """What the monitor remembers about one container between cycles."""
    consecutive_failures: int = 0
    last_restart_at: Optional[float] = None


class HealthMonitor:
    """
    Background service that monitors container health.

    - Only running containers with an engine healthcheck are considered
    - A container is restarted after `failure_threshold` consecutive
      unhealthy observations
    - At most one restart per container per `restart_cooldown` seconds
    """

    def __init__(
        self,
        client,
        lifecycle: ContainerLifecycleManager,
        check_interval: int = 10,
        failure_threshold: int = 3,
        restart_cooldown: int = 60,
        clock=time.monotonic,
    ):
        self._client = client
        self._lifecycle = lifecycle
        self.check_interval = check_interval
        self.failure_threshold = failure_threshold
        self.restart_cooldown = restart_cooldown
        self._clock = clock
        self._records: Dict[str, HealthRecord] = {}
        self._stop_event = threading.Event()

        logger.info("Health Monitor initialized")
        logger.info(f"Check interval: {check_interval}s")
        logger.info(f"Failure threshold: {failure_threshold}")
        logger.info(f"Restart cooldown: {restart_cooldown}s")

    def start(self):
        """Start the health monitor loop."""
        logger.info("=" * 80)
        logger.info("🏥 HEALTH MONITOR STARTED")
        logger.info("=" * 80)
        logger.info("Press Ctrl+C to stop")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while not self._stop_event.is_set():
            try:
                self.check_cycle()
            except Exception as e:
                logger.error(f"Error in check cycle: {e}", exc_info=True)

            self._stop_event.wait(self.check_interval)

        logger.info("Health Monitor stopped")

    def stop(self):
        self._stop_event.set()

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.stop()

    def check_cycle(self) -> List[str]:
        """
        Single health check cycle.

        Returns:
            Names of containers restarted in this cycle
        """
        containers = self._find_containers_to_check()

        # Forget containers that went away
        seen = {c.name for c in containers}
        for name in list(self._records):
            if name not in seen:
                del self._records[name]

        if not containers:
            logger.debug("No containers to check")
            return []

        restarted = []
        for container in containers:
            try:
                if self._check_container(container):
                    restarted.append(container.name)
            except WorkloadError as e:
                logger.error(f"[{container.name}] Health handling failed: {e}")
        return restarted

    def _find_containers_to_check(self) -> list:
        with engine_call("list managed containers"):
            containers = self._client.containers.list(
                filters={"label": [f"{MANAGED_LABEL}=true"], "status": "running"},
            )
        return [
            c for c in containers
            if (c.labels or {}).get(KIND_LABEL) in MONITORED_KINDS
        ]

    def _check_container(self, container) -> bool:
        """Record one observation. True if the container was restarted."""
        health = ((container.attrs.get("State") or {}).get("Health") or {}).get("Status")
        if not health:
            # No probe configured
            return False

        record = self._records.setdefault(container.name, HealthRecord())

        if health != "unhealthy":
            if record.consecutive_failures:
                logger.info(f"[{container.name}] ✅ Healthy again ({health})")
            record.consecutive_failures = 0
            return False

        record.consecutive_failures += 1
        logger.warning(
            f"[{container.name}] ❌ Unhealthy "
            f"({record.consecutive_failures}/{self.failure_threshold})"
        )

        if record.consecutive_failures < self.failure_threshold:
            return False

        now = self._clock()
        if record.last_restart_at is not None and now - record.last_restart_at < self.restart_cooldown:
            logger.info(f"[{container.name}] Restart skipped, cooling down")
            return False

        if not self._restart(container):
            return False
        record.last_restart_at = now
        record.consecutive_failures = 0
        return True

    def _restart(self, container) -> bool:
        labels = container.labels or {}
        resource_id = labels.get(RESOURCE_LABEL)
        try:
            kind = ResourceKind(labels.get(KIND_LABEL))
        except ValueError:
            kind = None
        if not resource_id or kind is None:
            logger.warning(f"[{container.name}] Cannot restart, identity labels are incomplete")
            return False

        resource = LogicalResource(
            owner_id=labels.get(OWNER_LABEL, ""),
            resource_id=resource_id,
            kind=kind,
        )
        logger.info(f"[{container.name}] Restarting unhealthy container")
        self._lifecycle.restart(resource, reason="unhealthy")
        return True
