"""Conversation persistence.

Sessions are stored as YAML files in:
  <data_dir>/sessions/<session-id>.yaml

Session files contain:
- id: Unique identifier
- title: First user text, truncated
- created_at: ISO timestamp
- updated_at: ISO timestamp
- messages: Conversation history

`current.yaml` in the same directory maps each UI surface ("main",
"floating") to the session it is showing.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from filelock import FileLock

from opencowork.core.llm.content import ImageBlock
from opencowork.core.llm.provider import Message, Role
from opencowork.logging import get_logger

log = get_logger("storage")

TITLE_LENGTH = 30
DEFAULT_TITLE = "New Chat"
POINTER_FILE = "current.yaml"

MAIN_SURFACE = "main"
FLOATING_SURFACE = "floating"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _user_text(message: Message) -> str:
    return message.text().strip()


def is_meaningful(messages: list[Message]) -> bool:
    """True if some user message carries text or an image."""
    for message in messages:
        if message.role is not Role.USER:
            continue
        if _user_text(message) or any(isinstance(b, ImageBlock) for b in message.blocks):
            return True
    return False


def derive_title(messages: list[Message]) -> str:
    for message in messages:
        if message.role is Role.USER:
            text = _user_text(message)
            if text:
                return text[:TITLE_LENGTH]
    return DEFAULT_TITLE


@dataclass
class SessionMetadata:
    """Lightweight session metadata for listing."""

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int


@dataclass
class Session:
    """A saved conversation."""

    id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    messages: list[Message] = field(default_factory=list)

    @property
    def metadata(self) -> SessionMetadata:
        return SessionMetadata(
            id=self.id,
            title=self.title,
            created_at=self.created_at,
            updated_at=self.updated_at,
            message_count=len(self.messages),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or DEFAULT_TITLE),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
        )


class SessionStore:
    """Session files plus the per-surface current-session pointers."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._lock = FileLock(directory / ".lock", timeout=10)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, session_id: str) -> Path:
        return self._directory / f"{session_id}.yaml"

    def _write_yaml(self, path: Path, data: dict[str, Any]) -> None:
        """Atomic write by writing to a temp file first. Caller holds the lock."""
        temp_path = path.with_suffix(".yaml.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            os.replace(temp_path, path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _read(self, path: Path) -> Session | None:
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
            return Session.from_dict(data)
        except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
            log.warning("Failed to load session from %s: %s", path, e)
            return None

    def _save(self, session: Session) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self._write_yaml(self._path(session.id), session.to_dict())
        log.debug("Saved session %s (%d messages)", session.id, len(session.messages))

    # -- sessions ----------------------------------------------------------

    def create(self, messages: list[Message] | None = None, title: str | None = None) -> Session:
        messages = list(messages or [])
        session = Session(
            id=uuid.uuid4().hex,
            title=title or derive_title(messages),
            messages=messages,
        )
        self._save(session)
        return session

    def get(self, session_id: str) -> Session | None:
        return self._read(self._path(session_id))

    def list(self) -> list[SessionMetadata]:
        """All sessions, most recently updated first."""
        if not self._directory.exists():
            return []
        sessions: list[SessionMetadata] = []
        for path in self._directory.glob("*.yaml"):
            if path.name == POINTER_FILE:
                continue
            session = self._read(path)
            if session is not None:
                sessions.append(session.metadata)
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def save_messages(self, session_id: str | None, messages: list[Message]) -> str | None:
        """Save a conversation.

        Conversations without any user content are not written.

        Args:
            session_id: Session to update, or None to start a new one.
            messages: The full history.

        Returns:
            The id the messages were saved under, or None if skipped.
        """
        if not is_meaningful(messages):
            return None
        existing = self.get(session_id) if session_id else None
        if existing is None:
            session = Session(
                id=session_id or uuid.uuid4().hex,
                title=derive_title(messages),
                messages=list(messages),
            )
        else:
            session = existing
            session.messages = list(messages)
            session.updated_at = _now()
            if session.title == DEFAULT_TITLE:
                session.title = derive_title(messages)
        self._save(session)
        return session.id

    def delete(self, session_id: str) -> bool:
        """Delete a session and clear any pointer to it."""
        path = self._path(session_id)
        if not path.exists():
            return False
        with self._lock:
            path.unlink(missing_ok=True)
            pointers = self._read_pointers()
            kept = {k: v for k, v in pointers.items() if v != session_id}
            if kept != pointers:
                self._write_pointers(kept)
        log.debug("Deleted session %s", session_id)
        return True

    def cleanup_empty(self) -> int:
        """Remove sessions with no user content. Returns how many were removed."""
        removed = 0
        for meta in self.list():
            session = self.get(meta.id)
            if session is not None and not is_meaningful(session.messages):
                if self.delete(meta.id):
                    removed += 1
        if removed:
            log.info("Removed %d empty sessions", removed)
        return removed

    # -- current pointers -----------------------------------------------------

    def _read_pointers(self) -> dict[str, str]:
        path = self._directory / POINTER_FILE
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            log.warning("Unreadable session pointers %s: %s", path, e)
            return {}
        return {str(k): str(v) for k, v in data.items() if v} if isinstance(data, dict) else {}

    def _write_pointers(self, pointers: dict[str, str]) -> None:
        self._write_yaml(self._directory / POINTER_FILE, pointers)

    def current_id(self, surface: str = MAIN_SURFACE) -> str | None:
        return self._read_pointers().get(surface)

    def set_current(self, surface: str, session_id: str | None) -> None:
        """Point a surface at a session, or detach it with None."""
        self._directory.mkdir(parents=True, exist_ok=True)
        with self._lock:
            pointers = self._read_pointers()
            if session_id is None:
                pointers.pop(surface, None)
            else:
                pointers[surface] = session_id
            self._write_pointers(pointers)
