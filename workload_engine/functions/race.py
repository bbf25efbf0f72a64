# workload_engine/functions/race.py
"""
Exit-vs-deadline join.

A background waiter reports the container exit; the caller's thread owns
the deadline and the cancel token. Whoever settles first wins and every
later settle is ignored, so a late exit can never overwrite a timeout that
was already decided.
"""

import threading
from dataclasses import dataclass
from typing import Optional

EXITED = "exited"
TIMED_OUT = "timed_out"
CANCELLED = "cancelled"
ENGINE_ERROR = "engine_error"


@dataclass(frozen=True)
class RaceOutcome:
    kind: str
    exit_code: Optional[int] = None
    error: Optional[BaseException] = None


class ExitRace:
    """Single-assignment outcome shared by the waiter and the deadline owner."""

    def __init__(self):
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._outcome: Optional[RaceOutcome] = None

    def settle(self, outcome: RaceOutcome) -> bool:
        """Record outcome if nobody has yet. True if this call won."""
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = outcome
        self._settled.set()
        return True

    def wait(self, timeout: float) -> bool:
        return self._settled.wait(timeout)

    @property
    def settled(self) -> bool:
        return self._settled.is_set()

    @property
    def outcome(self) -> Optional[RaceOutcome]:
        with self._lock:
            return self._outcome


def run_until_settled(
    race: ExitRace,
    deadline: float,
    clock,
    cancel: Optional[threading.Event] = None,
    slice_seconds: float = 0.05,
) -> RaceOutcome:
    """
    Block until the race is settled, settling it with TIMED_OUT at the
    deadline or CANCELLED when the token fires.
    """
    while not race.settled:
        if cancel is not None and cancel.is_set():
            race.settle(RaceOutcome(CANCELLED))
            break
        remaining = deadline - clock()
        if remaining <= 0:
            race.settle(RaceOutcome(TIMED_OUT))
            break
        race.wait(min(remaining, slice_seconds))
    return race.outcome
