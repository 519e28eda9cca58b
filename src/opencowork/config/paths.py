"""Platform-aware configuration path resolution.

- Windows: %PROGRAMDATA% (system), %APPDATA% (user)
- Unix: /etc/opencowork/ (system), $XDG_CONFIG_HOME/opencowork/ or ~/.opencowork/ (user)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "opencowork"
DOT_DIR = ".opencowork"


def get_system_config_path() -> Path | None:
    """Get the system-level config path (the file may not exist)."""
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA")
        if program_data:
            return Path(program_data) / APP_NAME / CONFIG_FILENAME
        return None
    return Path("/etc") / APP_NAME / CONFIG_FILENAME


def get_user_config_path() -> Path | None:
    """Get the user-level config path (the file may not exist)."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME
    return Path.home() / DOT_DIR / CONFIG_FILENAME


def get_config_paths() -> list[Path]:
    """Get config paths in priority order (lowest to highest)."""
    paths: list[Path] = []
    for path in (get_system_config_path(), get_user_config_path()):
        if path is not None:
            paths.append(path)
    return paths
