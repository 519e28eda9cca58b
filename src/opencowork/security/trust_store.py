"""Durable record of authorized folders and remembered permissions.

The store is a YAML file (`<data_dir>/trust.yaml`) shared by every agent
instance in the process and by other processes. Each mutation is a
locked read-modify-write that replaces the whole file, so concurrent
writers see last-write-wins semantics rather than torn records.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from filelock import FileLock

from opencowork.logging import get_logger
from opencowork.security.paths import is_filesystem_root, is_within, normalize_path

log = get_logger("trust")

WILDCARD = "*"


class TrustLevel(str, Enum):
    """Per-folder approval policy."""

    STRICT = "strict"
    STANDARD = "standard"
    TRUST = "trust"


@dataclass
class InvalidPath(Exception):
    """Raised when a folder cannot be authorized."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid path '{self.path}': {self.reason}"


@dataclass
class AuthorizedFolder:
    """A user-approved working root."""

    path: str
    trust_level: TrustLevel = TrustLevel.STRICT
    added_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "trust_level": self.trust_level.value,
            "added_at": self.added_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizedFolder:
        try:
            level = TrustLevel(data.get("trust_level", TrustLevel.STRICT.value))
        except ValueError:
            level = TrustLevel.STRICT
        return cls(
            path=str(data["path"]),
            trust_level=level,
            added_at=_parse_time(data.get("added_at")),
        )


@dataclass
class GrantedPermission:
    """A remembered approval for a tool, optionally scoped to a path prefix."""

    tool: str
    path_pattern: str = WILDCARD
    granted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def matches(self, tool: str, path: str | None) -> bool:
        if self.tool != tool:
            return False
        if self.path_pattern == WILDCARD:
            return True
        if path is None:
            return False
        return is_within(normalize_path(path), normalize_path(self.path_pattern))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "path_pattern": self.path_pattern,
            "granted_at": self.granted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GrantedPermission:
        return cls(
            tool=str(data["tool"]),
            path_pattern=str(data.get("path_pattern") or WILDCARD),
            granted_at=_parse_time(data.get("granted_at")),
        )


@dataclass
class TrustRecord:
    """Everything the store persists, replaced as one unit."""

    folders: list[AuthorizedFolder] = field(default_factory=list)
    permissions: list[GrantedPermission] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "folders": [f.to_dict() for f in self.folders],
            "permissions": [p.to_dict() for p in self.permissions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrustRecord:
        folders = [
            AuthorizedFolder.from_dict(f)
            for f in data.get("folders") or []
            if isinstance(f, dict) and f.get("path")
        ]
        permissions = [
            GrantedPermission.from_dict(p)
            for p in data.get("permissions") or []
            if isinstance(p, dict) and p.get("tool")
        ]
        return cls(folders=folders, permissions=permissions)


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(timezone.utc)


class TrustStore:
    """Folder trust levels and standing permissions.

    Reads always go back to the file so separate agent instances observe
    each other's changes. With `path=None` the record lives in memory.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: YAML file backing the store, or None for in-memory use.
        """
        self._path = path
        self._lock_path = path.with_suffix(".lock") if path is not None else None
        self._memory = TrustRecord()

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> TrustRecord:
        if self._path is None:
            return TrustRecord(
                folders=[replace(f) for f in self._memory.folders],
                permissions=[replace(p) for p in self._memory.permissions],
            )
        if not self._path.exists():
            return TrustRecord()
        try:
            with open(self._path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return TrustRecord.from_dict(data if isinstance(data, dict) else {})
        except (yaml.YAMLError, OSError) as e:
            log.warning("Unreadable trust store %s, starting empty: %s", self._path, e)
            return TrustRecord()

    def _save(self, record: TrustRecord) -> None:
        if self._path is None:
            self._memory = record
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(".yaml.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(record.to_dict(), f, default_flow_style=False, sort_keys=False)
        os.replace(temp_path, self._path)

    def _atomic_update(self, modifier: Callable[[TrustRecord], TrustRecord]) -> TrustRecord:
        """Read-modify-write under the file lock."""
        if self._lock_path is None:
            record = modifier(self._load())
            self._save(record)
            return record
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(self._lock_path, timeout=10):
            record = modifier(self._load())
            self._save(record)
            return record

    # -- folders ---------------------------------------------------------

    def get_folders(self) -> list[AuthorizedFolder]:
        """Authorized folders; the first one is the primary working directory."""
        return list(self._load().folders)

    def primary_folder(self) -> AuthorizedFolder | None:
        folders = self._load().folders
        return folders[0] if folders else None

    def find_folder(self, path: str) -> AuthorizedFolder | None:
        """Exact lookup by normalized path."""
        key = str(normalize_path(path))
        for folder in self._load().folders:
            if folder.path == key:
                return folder
        return None

    def add_folder(
        self, path: str, trust_level: TrustLevel = TrustLevel.STRICT
    ) -> AuthorizedFolder:
        """Authorize a folder.

        Adding an already-authorized folder returns the existing entry
        unchanged.

        Raises:
            InvalidPath: If the path is, or normalizes to, a filesystem root.
        """
        if is_filesystem_root(path):
            raise InvalidPath(path=path, reason="filesystem roots cannot be authorized")
        key = str(normalize_path(path))
        result: list[AuthorizedFolder] = []

        def modifier(record: TrustRecord) -> TrustRecord:
            for folder in record.folders:
                if folder.path == key:
                    result.append(folder)
                    return record
            folder = AuthorizedFolder(path=key, trust_level=trust_level)
            record.folders.append(folder)
            result.append(folder)
            log.info("Authorized folder %s (%s)", key, trust_level.value)
            return record

        self._atomic_update(modifier)
        return replace(result[0])

    def remove_folder(self, path: str) -> bool:
        """Revoke a folder. Returns False if it was not authorized."""
        key = str(normalize_path(path))
        removed: list[bool] = []

        def modifier(record: TrustRecord) -> TrustRecord:
            kept = [f for f in record.folders if f.path != key]
            removed.append(len(kept) != len(record.folders))
            record.folders = kept
            return record

        self._atomic_update(modifier)
        return removed[0]

    def set_folder_trust(self, path: str, level: TrustLevel) -> None:
        """Change a folder's trust level.

        Raises:
            InvalidPath: If the folder is not authorized.
        """
        key = str(normalize_path(path))
        found: list[bool] = []

        def modifier(record: TrustRecord) -> TrustRecord:
            for folder in record.folders:
                if folder.path == key:
                    folder.trust_level = level
                    found.append(True)
            return record

        self._atomic_update(modifier)
        if not found:
            raise InvalidPath(path=path, reason="folder is not authorized")
        log.info("Trust level for %s set to %s", key, level.value)

    def set_primary_folder(self, path: str) -> None:
        """Move an authorized folder to the front of the list.

        Raises:
            InvalidPath: If the folder is not authorized.
        """
        key = str(normalize_path(path))
        found: list[bool] = []

        def modifier(record: TrustRecord) -> TrustRecord:
            matches = [f for f in record.folders if f.path == key]
            if matches:
                found.append(True)
                record.folders = matches + [f for f in record.folders if f.path != key]
            return record

        self._atomic_update(modifier)
        if not found:
            raise InvalidPath(path=path, reason="folder is not authorized")

    def trust_level_for_folder(self, path: str) -> TrustLevel:
        """Trust level of an authorized folder; Strict when unknown."""
        folder = self.find_folder(path)
        return folder.trust_level if folder else TrustLevel.STRICT

    # -- permissions -----------------------------------------------------

    def get_permissions(self) -> list[GrantedPermission]:
        return list(self._load().permissions)

    def has_standing_permission(self, tool: str, path: str | None = None) -> bool:
        """True if a remembered approval covers `tool` at `path`.

        Without a path only wildcard grants match.
        """
        return any(p.matches(tool, path) for p in self._load().permissions)

    def grant_permission(self, tool: str, path_pattern: str | None = None) -> GrantedPermission:
        """Remember an approval. Duplicate grants are not stored twice."""
        pattern = WILDCARD
        if path_pattern and path_pattern != WILDCARD:
            pattern = str(normalize_path(path_pattern))
        result: list[GrantedPermission] = []

        def modifier(record: TrustRecord) -> TrustRecord:
            for existing in record.permissions:
                if existing.tool == tool and existing.path_pattern == pattern:
                    result.append(existing)
                    return record
            granted = GrantedPermission(tool=tool, path_pattern=pattern)
            record.permissions.append(granted)
            result.append(granted)
            return record

        self._atomic_update(modifier)
        log.info("Granted standing permission %s on %s", tool, pattern)
        return replace(result[0])

    def revoke_permission(self, tool: str, path_pattern: str | None = None) -> bool:
        """Forget one remembered approval. Returns False if none matched."""
        pattern = WILDCARD
        if path_pattern and path_pattern != WILDCARD:
            pattern = str(normalize_path(path_pattern))
        removed: list[bool] = []

        def modifier(record: TrustRecord) -> TrustRecord:
            kept = [
                p
                for p in record.permissions
                if not (p.tool == tool and p.path_pattern == pattern)
            ]
            removed.append(len(kept) != len(record.permissions))
            record.permissions = kept
            return record

        self._atomic_update(modifier)
        return removed[0]

    def clear_all_permissions(self) -> None:
        def modifier(record: TrustRecord) -> TrustRecord:
            record.permissions = []
            return record

        self._atomic_update(modifier)
        log.info("Cleared all standing permissions")
