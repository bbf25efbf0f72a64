# workload_engine/resources/limits.py
"""
Resource spec translation.

Turns user-facing strings ("256m", "0.5") into engine units. Malformed input
never fails a deploy: it degrades to the documented default instead.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

MIB = 1024 * 1024
GIB = 1024 * MIB

DEFAULT_MEMORY_BYTES = 256 * MIB
DEFAULT_CPUS = "0.25"

NANO_CPUS_PER_CORE = 1_000_000_000
CPU_PERIOD = 100_000
MIN_CPU_QUOTA = 1_000

_MEMORY_PATTERN = re.compile(r"^(\d+)(m|g|mb|gb)?$", re.IGNORECASE)


def parse_memory(spec: Any) -> int:
    """
    Parse a memory string into bytes.

    Accepts "<int>" (MiB), "<int>m", "<int>mb", "<int>g", "<int>gb",
    case-insensitive. Anything else yields DEFAULT_MEMORY_BYTES.
    """
    if spec is None:
        return DEFAULT_MEMORY_BYTES

    match = _MEMORY_PATTERN.match(str(spec).strip())
    if not match:
        logger.warning(f"Unparseable memory spec {spec!r}, using default {DEFAULT_MEMORY_BYTES} bytes")
        return DEFAULT_MEMORY_BYTES

    value = int(match.group(1))
    unit = (match.group(2) or "m").lower()

    if unit in ("g", "gb"):
        return value * GIB
    return value * MIB


def _parse_cores(spec: Any) -> Decimal:
    try:
        cores = Decimal(str(spec).strip())
    except (InvalidOperation, ValueError):
        cores = None

    if cores is None or not cores.is_finite() or cores <= 0:
        logger.warning(f"Unparseable cpu spec {spec!r}, using default {DEFAULT_CPUS} cores")
        return Decimal(DEFAULT_CPUS)
    return cores


def parse_cpu(spec: Any) -> int:
    """
    Parse a core count ("0.5", "2") into engine nano-CPUs.

    Truncates, never rounds up, so a limit is never over-allocated.
    """
    if spec is None:
        return int(Decimal(DEFAULT_CPUS) * NANO_CPUS_PER_CORE)
    return int(_parse_cores(spec) * NANO_CPUS_PER_CORE)


def cpu_quota(spec: Any, period: int = CPU_PERIOD) -> int:
    """CFS quota (microseconds per period) for a core count, truncated."""
    cores = Decimal(DEFAULT_CPUS) if spec is None else _parse_cores(spec)
    return max(int(cores * period), MIN_CPU_QUOTA)


@dataclass(frozen=True)
class ResourceLimits:
    """
    Engine-native limits for one container.

    Derived once from user input; a redeploy recomputes them from scratch.
    """
    memory_bytes: int
    nano_cpus: int
    memory_swap_bytes: Optional[int] = None
    disk_hint: Optional[str] = None

    @classmethod
    def from_strings(
        cls,
        memory: Optional[str],
        cpus: Optional[str],
        memory_swap: Optional[str] = None,
        disk_hint: Optional[str] = None,
    ) -> "ResourceLimits":
        return cls(
            memory_bytes=parse_memory(memory),
            nano_cpus=parse_cpu(cpus),
            memory_swap_bytes=parse_memory(memory_swap) if memory_swap else None,
            disk_hint=disk_hint,
        )

    def to_docker_options(self) -> Dict[str, Any]:
        """Keyword arguments for containers.create()."""
        options: Dict[str, Any] = {
            "mem_limit": self.memory_bytes,
            "nano_cpus": self.nano_cpus,
        }
        if self.memory_swap_bytes:
            options["memswap_limit"] = self.memory_swap_bytes
        return options

    def __str__(self) -> str:
        return f"ResourceLimits(mem={self.memory_bytes}, nano_cpus={self.nano_cpus})"
