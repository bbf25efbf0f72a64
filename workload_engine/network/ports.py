# workload_engine/network/ports.py
"""
Port allocator.

Best-effort, no lease: the used-set is a snapshot of what the engine
publishes right now. Two concurrent allocations can pick the same free port;
the loser finds out as a container start error.
"""

import logging
import random
from typing import Iterable, Optional, Set

from workload_engine.core.errors import ResourceExhausted
from workload_engine.engine.client import engine_call

logger = logging.getLogger(__name__)

DEFAULT_PORT_LOW = 20000
DEFAULT_PORT_HIGH = 30000
DEFAULT_SAMPLE_ATTEMPTS = 64

PORT_RANGE_EXHAUSTED = "PORT_RANGE_EXHAUSTED"
PORT_COLLISION = "PORT_COLLISION"


class PortAllocator:
    """Picks unused host ports from a bounded range."""

    def __init__(
        self,
        client,
        low: int = DEFAULT_PORT_LOW,
        high: int = DEFAULT_PORT_HIGH,
        sample_attempts: int = DEFAULT_SAMPLE_ATTEMPTS,
        rng: Optional[random.Random] = None,
    ):
        if low > high:
            raise ValueError(f"Invalid port range {low}-{high}")
        self._client = client
        self.low = low
        self.high = high
        self._sample_attempts = sample_attempts
        self._rng = rng or random.Random()

    def used_ports(self) -> Set[int]:
        """Host ports published by any container the engine knows of."""
        with engine_call("list containers"):
            containers = self._client.api.containers(all=True)

        used: Set[int] = set()
        for container in containers:
            for port in container.get("Ports") or []:
                public = port.get("PublicPort")
                if public:
                    used.add(int(public))
        return used

    def allocate_port(
        self,
        low: Optional[int] = None,
        high: Optional[int] = None,
        exclude: Optional[Iterable[int]] = None,
    ) -> int:
        """
        Return a host port in [low, high] that nothing publishes.

        Args:
            exclude: Ports the caller already picked but has not bound yet

        Raises:
            ResourceExhausted: PORT_RANGE_EXHAUSTED when no port is free
        """
        low = self.low if low is None else low
        high = self.high if high is None else high

        used = self.used_ports()
        if exclude:
            used |= set(exclude)

        for _ in range(self._sample_attempts):
            candidate = self._rng.randint(low, high)
            if candidate not in used:
                return candidate

        # Sampling keeps missing: the range is nearly full, enumerate it
        free = [port for port in range(low, high + 1) if port not in used]
        if not free:
            logger.warning(f"Port range {low}-{high} exhausted ({len(used)} ports in use)")
            raise ResourceExhausted(
                f"No free port in range {low}-{high}",
                code=PORT_RANGE_EXHAUSTED,
            )
        return self._rng.choice(free)
