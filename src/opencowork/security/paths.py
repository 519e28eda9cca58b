"""Path normalization helpers shared by the trust store and authorizer."""

from __future__ import annotations

import os
import re
from pathlib import Path, PureWindowsPath

_DRIVE_ROOT = re.compile(r"^[A-Za-z]:[\\/]?$")


def normalize_path(path: str | os.PathLike[str], base: str | None = None) -> Path:
    """Return an absolute path with `~`, `.` and `..` resolved.

    Symlinks are followed where they exist; missing components are kept
    as written so not-yet-created files can still be checked.

    Args:
        path: Candidate path, absolute or relative.
        base: Directory relative paths are resolved against (default: cwd).
    """
    candidate = Path(os.path.expanduser(os.fspath(path)))
    if not candidate.is_absolute() and base is not None:
        candidate = Path(base) / candidate
    return candidate.resolve(strict=False)


def is_filesystem_root(path: str | os.PathLike[str]) -> bool:
    """True for `/`, a drive root like `C:\\`, or anything normalizing to one."""
    raw = os.fspath(path).strip()
    if not raw:
        return False
    if _DRIVE_ROOT.match(raw):
        return True
    windows = PureWindowsPath(raw)
    if windows.drive and windows.root and len(windows.parts) == 1:
        return True
    normalized = normalize_path(raw)
    return normalized.parent == normalized


def is_within(path: Path, root: Path) -> bool:
    """Segment-wise containment: `path` equals `root` or lies beneath it.

    `/home/ab` is not within `/home/abc` and vice versa.
    """
    root_parts = root.parts
    return path.parts[: len(root_parts)] == root_parts
