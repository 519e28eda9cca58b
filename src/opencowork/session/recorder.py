"""Keeps a SessionStore in step with an AgentLoop's history."""

from __future__ import annotations

from filelock import Timeout

from opencowork.agent.events import AgentEvent, EventKind
from opencowork.agent.loop import AgentLoop
from opencowork.core.llm.provider import Message
from opencowork.logging import get_logger
from opencowork.session.storage import MAIN_SURFACE, SessionStore

log = get_logger("recorder")


class SessionRecorder:
    """Saves the conversation of one UI surface as it changes.

    History updates and run completion both trigger a save into the
    surface's current session. The first meaningful save creates the
    session and points the surface at it.
    """

    def __init__(self, loop: AgentLoop, store: SessionStore, surface: str = MAIN_SURFACE) -> None:
        self._loop = loop
        self._store = store
        self._surface = surface
        self._unsubscribe = loop.on_event(self._on_event)

    @property
    def session_id(self) -> str | None:
        return self._store.current_id(self._surface)

    def _on_event(self, event: AgentEvent) -> None:
        if event.kind is EventKind.HISTORY_UPDATED:
            self.save(event.payload)
        elif event.kind is EventKind.DONE:
            self.save(self._loop.history)

    def save(self, messages: list[Message]) -> str | None:
        try:
            session_id = self._store.save_messages(self.session_id, messages)
        except (OSError, Timeout) as e:
            log.warning("Could not save session for %s: %s", self._surface, e)
            return None
        if session_id is not None and session_id != self.session_id:
            self._store.set_current(self._surface, session_id)
        return session_id

    def new_session(self) -> None:
        """Detach from the current session and start an empty conversation."""
        self._store.set_current(self._surface, None)
        self._loop.clear_history()

    def load(self, session_id: str) -> bool:
        """Switch the loop to a saved session. Returns False if it does not exist."""
        session = self._store.get(session_id)
        if session is None:
            return False
        self._store.set_current(self._surface, session_id)
        self._loop.load_history(session.messages)
        return True

    def close(self) -> None:
        self._unsubscribe()
