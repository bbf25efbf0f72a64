"""Event models for the workload engine."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LifecycleEvent:
    """Base lifecycle event."""

    event_type: str
    subject: str
    timestamp: datetime
    metadata: Dict[str, Any]

    @staticmethod
    def container_deployed(name: str, container_id: str, image: str):
        """Container (re)deployed event."""
        return LifecycleEvent(
            event_type="container.deployed",
            subject=name,
            timestamp=_now(),
            metadata={
                "container_id": container_id,
                "image": image,
            }
        )

    @staticmethod
    def container_deleted(name: str, existed: bool):
        """Container deleted event."""
        return LifecycleEvent(
            event_type="container.deleted",
            subject=name,
            timestamp=_now(),
            metadata={
                "existed": existed,
            }
        )

    @staticmethod
    def container_restarted(name: str, reason: str):
        """Container restarted event (manual or by the health monitor)."""
        return LifecycleEvent(
            event_type="container.restarted",
            subject=name,
            timestamp=_now(),
            metadata={
                "reason": reason,
            }
        )

    @staticmethod
    def container_reaped(name: str, status: str):
        """Leaked execution container removed by the reaper."""
        return LifecycleEvent(
            event_type="container.reaped",
            subject=name,
            timestamp=_now(),
            metadata={
                "status": status,
            }
        )

    @staticmethod
    def invocation_finished(function_id: str, result):
        """
        Invocation finished event.

        billed_duration_ms is the authoritative metering input.
        """
        return LifecycleEvent(
            event_type="invocation.finished",
            subject=function_id,
            timestamp=_now(),
            metadata={
                "invocation_id": result.invocation_id,
                "status": result.status.value,
                "success": result.success,
                "duration_ms": result.duration_ms,
                "billed_duration_ms": result.billed_duration_ms,
            }
        )
