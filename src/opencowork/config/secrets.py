"""API key lookup for OpenCowork.

Keys come from the process environment first and then from a
`.env.secrets` file parsed with python-dotenv. The file is searched in the
current directory and in the data directory (`~/.opencowork`).
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import dotenv_values

SECRETS_FILE = ".env.secrets"

# Shared fallback key for every Anthropic-compatible endpoint
FALLBACK_KEY_ENV = "ANTHROPIC_API_KEY"


@lru_cache(maxsize=4)
def _load_secrets(search_dirs: tuple[Path, ...]) -> dict[str, str | None]:
    values: dict[str, str | None] = {}
    # Earlier directories win, so load in reverse
    for directory in reversed(search_dirs):
        candidate = directory / SECRETS_FILE
        if candidate.is_file():
            values.update(dotenv_values(candidate))
    return values


def _search_dirs(data_dir: str | None) -> tuple[Path, ...]:
    dirs = [Path.cwd()]
    if data_dir:
        dirs.append(Path(data_dir).expanduser())
    return tuple(dirs)


def fetch_secret(
    key: str,
    default: str | None = None,
    data_dir: str | None = None,
) -> str | None:
    """Fetch a secret from the environment or a `.env.secrets` file.

    Environment variables win so tests can steer lookups with monkeypatch.

    Args:
        key: Variable name (e.g., "MINIMAX_API_KEY").
        default: Value returned when nothing is found.
        data_dir: Optional data directory searched after the cwd.

    Returns:
        The secret value, or `default`.
    """
    value = os.environ.get(key)
    if value is not None:
        return value

    secrets = _load_secrets(_search_dirs(data_dir))
    found = secrets.get(key)
    if found is not None:
        return found
    return default


def resolve_api_key(
    configured: str | None,
    env_var: str | None,
    data_dir: str | None = None,
) -> str | None:
    """Resolve a provider key: config value, provider env var, then the shared fallback."""
    if configured:
        return configured
    if env_var:
        value = fetch_secret(env_var, data_dir=data_dir)
        if value:
            return value
    return fetch_secret(FALLBACK_KEY_ENV, data_dir=data_dir)


def clear_secret_cache() -> None:
    """Forget cached `.env.secrets` contents."""
    _load_secrets.cache_clear()
