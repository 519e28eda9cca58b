"""Decides whether a filesystem path lies under an authorized folder."""

from __future__ import annotations

from pathlib import Path

from opencowork.security.paths import is_within, normalize_path
from opencowork.security.trust_store import AuthorizedFolder, TrustLevel, TrustStore


class PathAuthorizer:
    """Folder-based access check backed by a TrustStore.

    Relative candidates are resolved against the primary folder, falling
    back to the process working directory when nothing is authorized.
    """

    def __init__(self, trust_store: TrustStore) -> None:
        self._trust_store = trust_store

    def normalize(self, path: str) -> Path:
        primary = self._trust_store.primary_folder()
        return normalize_path(path, base=primary.path if primary else None)

    def containing_folder(self, path: str) -> AuthorizedFolder | None:
        """The deepest authorized folder that contains `path`, if any."""
        candidate = self.normalize(path)
        best: AuthorizedFolder | None = None
        best_depth = -1
        for folder in self._trust_store.get_folders():
            root = Path(folder.path)
            if is_within(candidate, root) and len(root.parts) > best_depth:
                best = folder
                best_depth = len(root.parts)
        return best

    def is_authorized(self, path: str) -> bool:
        """True iff `path` equals or descends from some authorized folder."""
        if not path:
            return False
        return self.containing_folder(path) is not None

    def trust_level_for(self, path: str) -> TrustLevel:
        """Trust tier governing `path`; Strict outside every authorized folder."""
        folder = self.containing_folder(path)
        return folder.trust_level if folder else TrustLevel.STRICT
