# workload_engine/metrics/collector.py
"""
Container metrics.

Point-in-time engine stats turned into percentages and byte counters.
Collection must never destabilize a caller: any engine failure yields None.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import requests
from docker.errors import DockerException

from workload_engine.core.models import ContainerStats, LogicalResource
from workload_engine.core.naming import resource_container_name

logger = logging.getLogger(__name__)


def _online_cpus(cpu_stats: Dict[str, Any]) -> int:
    online = cpu_stats.get("online_cpus")
    if online:
        return int(online)
    percpu = (cpu_stats.get("cpu_usage") or {}).get("percpu_usage") or []
    return len(percpu) or 1


def compute_cpu_percent(stats: Dict[str, Any]) -> float:
    """
    (cpu_delta / system_delta) * online_cpus * 100.

    Not clamped: multi-core load legitimately exceeds 100.
    """
    cpu_stats = stats.get("cpu_stats") or {}
    precpu_stats = stats.get("precpu_stats") or {}

    cpu_delta = (
        (cpu_stats.get("cpu_usage") or {}).get("total_usage", 0)
        - (precpu_stats.get("cpu_usage") or {}).get("total_usage", 0)
    )
    system_delta = cpu_stats.get("system_cpu_usage", 0) - precpu_stats.get("system_cpu_usage", 0)

    if system_delta <= 0 or cpu_delta < 0:
        return 0.0
    return (cpu_delta / system_delta) * _online_cpus(cpu_stats) * 100


def compute_memory_percent(usage: int, limit: int) -> Optional[float]:
    """usage/limit as a percentage; None when there is no limit to divide by."""
    if not limit:
        return None
    return (usage / limit) * 100


def sum_network_bytes(stats: Dict[str, Any]) -> Tuple[int, int]:
    """Received/transmitted bytes summed over every interface."""
    rx = tx = 0
    for interface in (stats.get("networks") or {}).values():
        rx += interface.get("rx_bytes", 0)
        tx += interface.get("tx_bytes", 0)
    return rx, tx


def stats_from_payload(stats: Dict[str, Any]) -> ContainerStats:
    memory = stats.get("memory_stats") or {}
    usage = memory.get("usage") or 0
    limit = memory.get("limit") or 0
    rx, tx = sum_network_bytes(stats)

    return ContainerStats(
        cpu_percent=compute_cpu_percent(stats),
        mem_usage=usage,
        mem_limit=limit,
        mem_percent=compute_memory_percent(usage, limit),
        net_rx=rx,
        net_tx=tx,
    )


class MetricsCollector:
    """Reads one stats sample per call from the engine."""

    def __init__(self, client):
        self._client = client

    def get_stats(self, container_id: str) -> Optional[ContainerStats]:
        """
        Derived stats for a container, or None if the engine cannot supply
        them (container gone, stats unavailable, engine unreachable).
        """
        try:
            container = self._client.containers.get(container_id)
            payload = container.stats(stream=False)
        except (DockerException, requests.exceptions.RequestException) as e:
            logger.debug(f"Stats unavailable for {container_id}: {e}")
            return None

        if not isinstance(payload, dict):
            return None

        try:
            return stats_from_payload(payload)
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed stats for {container_id}: {e}")
            return None

    def get_resource_stats(self, resource: LogicalResource) -> Optional[ContainerStats]:
        return self.get_stats(resource_container_name(resource))
