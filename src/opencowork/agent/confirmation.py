"""In-flight user confirmation requests.

Each request is a future keyed by a unique id. The caller awaits it; the
UI resolves it by id. Requests never time out; `cancel_all` denies every
outstanding one when the agent is aborted.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from opencowork.logging import get_logger

log = get_logger("confirm")


@dataclass
class PendingConfirmation:
    """A request waiting for the user's answer."""

    id: str
    tool: str
    description: str
    args: dict[str, Any]
    future: asyncio.Future[bool] = field(repr=False)

    @property
    def path(self) -> str | None:
        """The path the action targets (its `path` or `cwd` argument)."""
        value = self.args.get("path") or self.args.get("cwd")
        return str(value) if value else None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tool": self.tool,
            "description": self.description,
            "args": self.args,
        }


def new_confirmation_id() -> str:
    return f"confirm-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class ConfirmationBroker:
    """Owns the map of outstanding confirmations for one agent."""

    def __init__(self, notify: Callable[[PendingConfirmation], None] | None = None) -> None:
        """Initialize the broker.

        Args:
            notify: Called with each new request so the UI can ask the user.
        """
        self._notify = notify
        self._pending: dict[str, PendingConfirmation] = {}

    @property
    def pending(self) -> list[PendingConfirmation]:
        return list(self._pending.values())

    def get(self, confirmation_id: str) -> PendingConfirmation | None:
        return self._pending.get(confirmation_id)

    async def request(self, tool: str, description: str, args: dict[str, Any]) -> bool:
        """Ask the user and suspend until answered or cancelled.

        Returns:
            True if approved, False if denied or cancelled.
        """
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        entry = PendingConfirmation(
            id=new_confirmation_id(),
            tool=tool,
            description=description,
            args=dict(args),
            future=future,
        )
        self._pending[entry.id] = entry
        log.debug("Confirmation %s requested for %s", entry.id, tool)
        if self._notify is not None:
            self._notify(entry)
        try:
            return await future
        finally:
            self._pending.pop(entry.id, None)

    def resolve(self, confirmation_id: str, approved: bool) -> PendingConfirmation | None:
        """Answer a request. Unknown or already-answered ids are ignored.

        Returns:
            The resolved entry, or None if nothing was pending under that id.
        """
        entry = self._pending.pop(confirmation_id, None)
        if entry is None:
            log.debug("Ignoring answer for unknown confirmation %s", confirmation_id)
            return None
        if not entry.future.done():
            entry.future.set_result(bool(approved))
        return entry

    def cancel_all(self) -> int:
        """Deny every outstanding request. Returns how many were pending."""
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            if not entry.future.done():
                entry.future.set_result(False)
        if entries:
            log.info("Denied %d pending confirmations", len(entries))
        return len(entries)
