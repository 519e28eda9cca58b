"""Conversation persistence per UI surface."""

from opencowork.session.recorder import SessionRecorder
from opencowork.session.storage import (
    FLOATING_SURFACE,
    MAIN_SURFACE,
    Session,
    SessionMetadata,
    SessionStore,
)

__all__ = [
    "FLOATING_SURFACE",
    "MAIN_SURFACE",
    "Session",
    "SessionMetadata",
    "SessionRecorder",
    "SessionStore",
]
