# workload_engine/reaper/reaper.py
"""
Reaper - removes terminated execution containers that escaped cleanup.

Runs as a separate process and sweeps every `interval` seconds. Only
containers already in a terminal state are touched, so it can never race
destructively with a live invocation or deploy.
"""

import logging
import signal
import threading
from typing import Optional

import requests
from docker.errors import DockerException

from workload_engine.core.events import MultiEventEmitter, NullEventEmitter
from workload_engine.core.events_model import LifecycleEvent
from workload_engine.core.naming import FUNCTION_CONTAINER_PREFIX, is_invocation_container
from workload_engine.engine.best_effort import best_effort
from workload_engine.engine.client import engine_call

logger = logging.getLogger(__name__)

TERMINAL_STATES = ("exited", "dead")


class Reaper:
    """Periodic sweep of leaked `bunker-fn-*` containers."""

    def __init__(
        self,
        client,
        interval: int = 60,
        emitters: Optional[MultiEventEmitter] = None,
    ):
        self._client = client
        self.interval = interval
        self._emitters = emitters or MultiEventEmitter([NullEventEmitter()])
        self._stop_event = threading.Event()

        logger.info(f"Reaper initialized (interval: {interval}s)")

    def sweep(self) -> int:
        """
        One pass.

        Returns:
            Number of containers removed

        Raises:
            EngineUnavailable: If the container list cannot be read
        """
        with engine_call("list execution containers"):
            candidates = self._client.containers.list(
                all=True,
                filters={"name": FUNCTION_CONTAINER_PREFIX, "status": list(TERMINAL_STATES)},
            )

        removed = 0
        for container in candidates:
            # The engine's name filter is a substring match, check again
            if not is_invocation_container(container.name):
                continue
            if container.status not in TERMINAL_STATES:
                continue

            status = container.status
            try:
                if best_effort(f"[{container.name}] reap", container.remove, force=True):
                    removed += 1
                    logger.info(f"[{container.name}] Reaped ({status})")
                    self._emitters.emit([LifecycleEvent.container_reaped(container.name, status)])
            except (DockerException, requests.exceptions.RequestException) as e:
                logger.error(f"[{container.name}] Failed to reap: {e}")

        if removed:
            logger.info(f"🧹 Reaped {removed} execution container(s)")
        else:
            logger.debug("Nothing to reap")
        return removed

    def start(self):
        """Run sweeps until SIGINT/SIGTERM or stop()."""
        logger.info("=" * 80)
        logger.info("🧹 REAPER STARTED")
        logger.info("=" * 80)
        logger.info(f"Sweep interval: {self.interval}s")
        logger.info("Press Ctrl+C to stop")
        logger.info("=" * 80)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while not self._stop_event.is_set():
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Error in reaper sweep: {e}", exc_info=True)

            self._stop_event.wait(self.interval)

        logger.info("Reaper stopped")

    def stop(self):
        self._stop_event.set()

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.stop()
