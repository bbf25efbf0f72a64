"""Event emitters for the workload engine."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Iterable, List

from workload_engine.core.events_model import LifecycleEvent

logger = logging.getLogger(__name__)


ALLOWED_EVENTS = {
    "container.deployed",
    "container.deleted",
    "container.restarted",
    "container.reaped",
    "invocation.finished",
}


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[LifecycleEvent]) -> None:
        """Emit one or more events."""
        pass


def _validate(event: LifecycleEvent) -> None:
    if event.event_type not in ALLOWED_EVENTS:
        raise ValueError(f"Invalid event type: {event.event_type}")
    if not event.subject:
        raise ValueError("Event must have a subject")


class LoggingEventEmitter(EventEmitter):
    """Writes events to the log."""

    def emit(self, events: Iterable[LifecycleEvent]) -> None:
        for event in events:
            _validate(event)
            logger.info(f"[EVENT] {event.event_type} | {event.subject} | {event.metadata}")


class RecordingEventEmitter(EventEmitter):
    """Keeps events in memory (tests, metering adapters that batch)."""

    def __init__(self):
        self.events: List[LifecycleEvent] = []
        self._lock = threading.Lock()

    def emit(self, events: Iterable[LifecycleEvent]) -> None:
        for event in events:
            _validate(event)
            with self._lock:
                self.events.append(event)

    def of_type(self, event_type: str) -> List[LifecycleEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]


class MultiEventEmitter:
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[LifecycleEvent]):
        """Emit to all emitters. A failing sink never breaks the caller."""
        events = list(events)
        for emitter in self._emitters:
            try:
                emitter.emit(events)
            except Exception as e:
                logger.error(f"Event emitter {type(emitter).__name__} failed: {e}")


class NullEventEmitter(EventEmitter):
    """No-op emitter (used when events are not needed)."""

    def emit(self, events: Iterable[LifecycleEvent]) -> None:
        """Do nothing."""
        pass
