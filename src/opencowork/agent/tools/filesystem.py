"""File operations behind the read_file, write_file and list_dir tools.

These run after authorization has already been checked. Expected
failures come back as model-visible text.
"""

from __future__ import annotations

from pathlib import Path


def read_file(path: Path, display: str) -> str:
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return f"Error: File not found: {display}"
    except PermissionError:
        return f"Error: Permission denied: {display}"
    except IsADirectoryError:
        return f"Error: {display} is a directory. Use list_dir instead."
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return f"[Binary file: {display} ({len(data)} bytes) cannot be displayed as text]"


def write_file(path: Path, content: str, display: str) -> str:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except PermissionError:
        return f"Error: Permission denied: {display}"
    except IsADirectoryError:
        return f"Error: {display} is a directory."
    return f"Successfully wrote to {display}"


def list_dir(path: Path, display: str) -> str:
    try:
        entries = list(path.iterdir())
    except FileNotFoundError:
        return f"Error: Directory not found: {display}"
    except NotADirectoryError:
        return f"Error: {display} is not a directory."
    except PermissionError:
        return f"Error: Permission denied: {display}"

    if not entries:
        return "(empty directory)"
    dirs = sorted(e.name for e in entries if e.is_dir())
    files = sorted(e.name for e in entries if not e.is_dir())
    return "\n".join([f"[DIR] {name}" for name in dirs] + [f"[FILE] {name}" for name in files])
