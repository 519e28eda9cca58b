"""Outbound notifications from an agent to its UI surfaces."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from opencowork.logging import get_logger

log = get_logger("events")


class EventKind(Enum):
    """Named notification channels."""

    HISTORY_UPDATED = "history-updated"
    STREAM_TOKEN = "stream-token"
    STREAM_THINKING = "stream-thinking"
    CONFIRM_REQUEST = "confirm-request"
    ABORTED = "aborted"
    ERROR = "error"
    ARTIFACT_CREATED = "artifact-created"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class AgentEvent:
    """One notification.

    Payload by kind:
        HISTORY_UPDATED: list[Message] snapshot
        STREAM_TOKEN / STREAM_THINKING: str fragment
        CONFIRM_REQUEST: {id, tool, description, args}
        ABORTED: {aborted: True, timestamp}
        ERROR: str, human readable
        ARTIFACT_CREATED: {path, name, type}
        DONE: {timestamp}
    """

    kind: EventKind
    payload: Any = None


AgentEventCallback = Callable[[AgentEvent], None]


class EventBroadcaster:
    """Delivers every event to every subscriber.

    A subscriber that raises is logged and skipped; it never interrupts
    delivery to the others or the code that emitted the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[AgentEventCallback] = []

    def subscribe(self, callback: AgentEventCallback) -> Callable[[], None]:
        """Register a subscriber.

        Returns:
            A function that unsubscribes it.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, kind: EventKind, payload: Any = None) -> None:
        event = AgentEvent(kind, payload)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                log.exception("Event subscriber failed on %s", kind.value)
