"""
Event recording against cluster objects.

Operators watch these events to spot repeated failures without reading logs.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from memberscale.config.policy import EVENT_TYPE_NORMAL, EVENT_TYPE_WARNING
from memberscale.core.entities.cluster import ClusterMeta

logger = logging.getLogger(__name__)


@dataclass
class Event:
    kind: str
    namespace: str
    name: str
    event_type: str
    reason: str
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "namespace": self.namespace,
            "name": self.name,
            "type": self.event_type,
            "reason": self.reason,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class EventRecorder(ABC):
    """Sink for events against an owning cluster object."""

    @abstractmethod
    def event(self, obj: ClusterMeta, event_type: str, reason: str, message: str) -> None:
        """Record a single event."""


class LoggingEventRecorder(EventRecorder):
    """Write events to the module logger only."""

    def event(self, obj: ClusterMeta, event_type: str, reason: str, message: str) -> None:
        level = logging.WARNING if event_type == EVENT_TYPE_WARNING else logging.INFO
        logger.log(level, "%s %s [%s] %s: %s", obj.kind, obj.key, event_type, reason, message)


class InMemoryEventRecorder(EventRecorder):
    """Keep events in memory (bounded) and mirror them to the log."""

    def __init__(self, max_events: int = 1024):
        self.events: List[Event] = []
        self._max_events = max(1, max_events)
        self._log = LoggingEventRecorder()

    def event(self, obj: ClusterMeta, event_type: str, reason: str, message: str) -> None:
        self.events.append(
            Event(
                kind=obj.kind,
                namespace=obj.namespace,
                name=obj.name,
                event_type=event_type,
                reason=reason,
                message=message,
            )
        )
        if len(self.events) > self._max_events:
            del self.events[: len(self.events) - self._max_events]
        self._log.event(obj, event_type, reason, message)

    def reasons(self, event_type: Optional[str] = None) -> List[str]:
        return [item.reason for item in self.events if event_type is None or item.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


def record_operation_event(
    recorder: EventRecorder,
    verb: str,
    controller: ClusterMeta,
    object_kind: str,
    object_name: str,
    err: Optional[BaseException],
) -> None:
    """Emit ``Successful<Verb>`` / ``Failed<Verb>`` for a mutation of a child object."""
    if err is None:
        reason = f"Successful{verb.title()}"
        message = f"{verb.lower()} {object_kind} {object_name} in {controller.kind} {controller.name} successful"
        recorder.event(controller, EVENT_TYPE_NORMAL, reason, message)
    else:
        reason = f"Failed{verb.title()}"
        message = f"{verb.lower()} {object_kind} {object_name} in {controller.kind} {controller.name} failed error: {err}"
        recorder.event(controller, EVENT_TYPE_WARNING, reason, message)
