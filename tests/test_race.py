#tests\test_race.py

"""Test the exit-vs-deadline join."""

import threading

from workload_engine.functions.race import (
    CANCELLED,
    EXITED,
    TIMED_OUT,
    ExitRace,
    RaceOutcome,
    run_until_settled,
)


class SteppingClock:
    """Advances by `step` on every read."""

    def __init__(self, step=0.01):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


class TestExitRace:
    """Test single assignment."""

    def test_first_settle_wins(self):
        race = ExitRace()

        assert race.settle(RaceOutcome(TIMED_OUT)) is True
        assert race.settle(RaceOutcome(EXITED, exit_code=0)) is False
        assert race.outcome.kind == TIMED_OUT

    def test_exit_before_deadline(self):
        race = ExitRace()
        race.settle(RaceOutcome(EXITED, exit_code=3))

        outcome = run_until_settled(race, deadline=100.0, clock=SteppingClock())

        assert outcome == RaceOutcome(EXITED, exit_code=3)

    def test_deadline(self):
        race = ExitRace()

        outcome = run_until_settled(race, deadline=0.05, clock=SteppingClock(), slice_seconds=0.001)

        assert outcome.kind == TIMED_OUT

    def test_late_exit_cannot_overwrite_timeout(self):
        race = ExitRace()
        run_until_settled(race, deadline=0.05, clock=SteppingClock(), slice_seconds=0.001)

        race.settle(RaceOutcome(EXITED, exit_code=0))

        assert race.outcome.kind == TIMED_OUT

    def test_cancel(self):
        race = ExitRace()
        cancel = threading.Event()
        cancel.set()

        outcome = run_until_settled(race, deadline=100.0, clock=SteppingClock(), cancel=cancel)

        assert outcome.kind == CANCELLED
