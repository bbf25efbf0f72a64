"""Core workload models."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from workload_engine.resources.limits import ResourceLimits


# ============================================
# ENUMS
# ============================================

class ResourceKind(Enum):
    """Kind of workload a logical resource stands for."""
    APP = "app"
    DATABASE = "database"
    FUNCTION_INVOCATION = "function-invocation"


class InvocationStatus(Enum):
    """Function invocation state machine."""
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


TERMINAL_INVOCATION_STATES = {
    InvocationStatus.SUCCEEDED,
    InvocationStatus.FAILED,
    InvocationStatus.TIMED_OUT,
    InvocationStatus.CANCELLED,
    InvocationStatus.REJECTED,
}


# ============================================
# IDENTITY & PLACEMENT
# ============================================

@dataclass(frozen=True)
class LogicalResource:
    """
    Caller-defined identity, stable across redeploys.

    The engine container name is derived from (kind, resource_id) only,
    so a prior container can always be rediscovered without bookkeeping.
    """
    owner_id: str
    resource_id: str
    kind: ResourceKind


@dataclass(frozen=True)
class NetworkPlacement:
    """Network a container is attached to."""
    name: str
    subnet: Optional[str] = None
    purpose: str = "workloads"


@dataclass(frozen=True)
class ExposedPort:
    """Container port and (optionally) the host port it is published on."""
    internal_port: int
    external_port: Optional[int] = None
    protocol: str = "tcp"

    @property
    def key(self) -> str:
        return f"{self.internal_port}/{self.protocol}"


@dataclass
class HealthProbe:
    """Engine-side health check run inside the container."""
    command: Optional[List[str]] = None
    http_path: Optional[str] = None
    http_port: Optional[int] = None
    interval_seconds: int = 30
    timeout_seconds: int = 5
    retries: int = 3
    start_period_seconds: int = 30

    def test_command(self) -> List[str]:
        if self.command:
            return ["CMD-SHELL", " ".join(self.command)]
        path = self.http_path or "/"
        return ["CMD-SHELL", f"wget -qO- http://127.0.0.1:{self.http_port}{path} || exit 1"]

    def to_docker(self) -> Dict[str, Any]:
        """Healthcheck dict for containers.create() (durations in nanoseconds)."""
        return {
            "test": self.test_command(),
            "interval": self.interval_seconds * 1_000_000_000,
            "timeout": self.timeout_seconds * 1_000_000_000,
            "retries": self.retries,
            "start_period": self.start_period_seconds * 1_000_000_000,
        }


@dataclass
class DeploySpec:
    """Everything needed to (re)create the container of a long-running resource."""
    resource: LogicalResource
    image: str
    limits: ResourceLimits
    placement: NetworkPlacement
    ports: List[ExposedPort] = field(default_factory=list)
    publish_all_ports: bool = False
    environment: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    command: Optional[List[str]] = None
    restart_policy: str = "unless-stopped"
    health_probe: Optional[HealthProbe] = None


# ============================================
# ENGINE SNAPSHOTS
# ============================================

@dataclass
class ContainerSnapshot:
    """Normalized point-in-time view of an engine container."""
    id: str
    name: str
    run_status: str
    health_status: Optional[str]
    ports: List[ExposedPort]
    created_at: Optional[datetime]
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def state(self) -> str:
        """Health status when the container has a probe, run status otherwise."""
        return self.health_status or self.run_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "run_status": self.run_status,
            "health_status": self.health_status,
            "state": self.state,
            "ports": [{"internal": p.internal_port, "external": p.external_port} for p in self.ports],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Outcome:
    """
    Typed result for expected failure modes (not found, already stopped).

    Only truly exceptional conditions are raised; everything a caller is
    expected to handle comes back as an Outcome.
    """
    ok: bool
    value: Any = None
    error_code: Optional[str] = None
    message: Optional[str] = None

    @staticmethod
    def success(value: Any = None) -> "Outcome":
        return Outcome(ok=True, value=value)

    @staticmethod
    def failure(error_code: str, message: str) -> "Outcome":
        return Outcome(ok=False, error_code=error_code, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ContainerStats:
    """Derived container statistics."""
    cpu_percent: float
    mem_usage: int
    mem_limit: int
    mem_percent: Optional[float]
    net_rx: int
    net_tx: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================
# FUNCTION INVOCATIONS
# ============================================

@dataclass
class FunctionSpec:
    """A request to run a function once."""
    function_id: str
    runtime: str
    payload: Any = None
    handler: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    memory_mb: Optional[int] = None
    timeout_ms: Optional[int] = None
    owner_id: str = ""


@dataclass
class Invocation:
    """One function invocation. Lives only for the duration of a call."""

    invocation_id: str
    function_id: str
    timeout_ms: int
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: InvocationStatus = InvocationStatus.RUNNING
    finished_at: Optional[datetime] = None

    # -------------------------
    # STATE TRANSITIONS
    # -------------------------

    def _finish(self, status: InvocationStatus) -> None:
        if self.status != InvocationStatus.RUNNING:
            raise ValueError(f"Cannot move to {status.value} from {self.status.value} state")
        self.status = status
        self.finished_at = datetime.now(timezone.utc)

    def succeed(self) -> None:
        self._finish(InvocationStatus.SUCCEEDED)

    def fail(self) -> None:
        self._finish(InvocationStatus.FAILED)

    def time_out(self) -> None:
        self._finish(InvocationStatus.TIMED_OUT)

    def cancel(self) -> None:
        self._finish(InvocationStatus.CANCELLED)

    def reject(self) -> None:
        self._finish(InvocationStatus.REJECTED)

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_INVOCATION_STATES


@dataclass
class ExecutionResult:
    """Outcome of one bounded execution. Timeouts are results, not exceptions."""
    success: bool
    duration_ms: int
    billed_duration_ms: int
    invocation_id: Optional[str] = None
    status: InvocationStatus = InvocationStatus.FAILED
    output: Any = None
    logs: str = ""
    error: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data
