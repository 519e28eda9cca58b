"""Configuration file loading and caching.

Handles YAML parsing, environment variable overrides, caching with reload
callbacks, and conversion from the merged dict to the typed Config.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from opencowork.config.merge import merge_layers
from opencowork.config.paths import get_config_paths
from opencowork.config.schema import (
    DEFAULT_PROVIDER,
    AgentConfig,
    Config,
    LLMConfig,
    LoggingConfig,
    MCPConfig,
    ProviderOverride,
    SkillsConfig,
    StorageConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("opencowork.config")

_cached_config: Config | None = None

_reload_callbacks: list[Callable[[Config], None]] = []

_KNOWN_SECTIONS = {"llm", "agent", "logging", "skills", "mcp", "storage"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config layer from environment variables.

    API keys are not read here; see `fetch_secret`.
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("OC_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    data_dir = os.environ.get("OC_DATA_DIR")
    if data_dir:
        overrides.setdefault("storage", {})["data_dir"] = data_dir

    provider = os.environ.get("OC_PROVIDER")
    if provider:
        overrides.setdefault("llm", {})["active_provider"] = provider

    return overrides


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    llm_data = _section(data, "llm")
    providers: dict[str, ProviderOverride] = {}
    for provider_id, override in _section(llm_data, "providers").items():
        if not isinstance(override, dict):
            continue
        max_tokens = override.get("max_tokens")
        providers[str(provider_id)] = ProviderOverride(
            api_key=override.get("api_key"),
            api_url=override.get("api_url"),
            model=override.get("model"),
            max_tokens=int(max_tokens) if max_tokens is not None else None,
        )
    llm = LLMConfig(
        active_provider=llm_data.get("active_provider") or DEFAULT_PROVIDER,
        providers=providers,
    )

    agent_data = _section(data, "agent")
    defaults = AgentConfig()
    agent = AgentConfig(
        max_iterations=int(agent_data.get("max_iterations", defaults.max_iterations)),
        stale_timeout=float(agent_data.get("stale_timeout", defaults.stale_timeout)),
        command_timeout=float(agent_data.get("command_timeout", defaults.command_timeout)),
        output_limit=int(agent_data.get("output_limit", defaults.output_limit)),
    )

    log_data = _section(data, "logging")
    verbose = log_data.get("verbose")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=int(verbose) if verbose is not None else None,
        file=log_data.get("file"),
    )

    skills = SkillsConfig(
        directory=_section(data, "skills").get("directory", SkillsConfig.directory),
    )
    mcp = MCPConfig(
        config_file=_section(data, "mcp").get("config_file", MCPConfig.config_file),
    )
    storage = StorageConfig(
        data_dir=_section(data, "storage").get("data_dir", StorageConfig.data_dir),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        llm=llm,
        agent=agent,
        logging=logging_config,
        skills=skills,
        mcp=mcp,
        storage=storage,
        extra=extra,
    )


def load_config(reload: bool = False, paths: list[Path] | None = None) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. User config
    3. System config

    Args:
        reload: Force a reload even if cached.
        paths: Explicit file list (lowest priority first); skips caching.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and paths is None:
        return _cached_config

    layers: list[dict[str, Any]] = []
    for path in paths if paths is not None else get_config_paths():
        layer = load_yaml_file(path)
        if layer:
            _log.debug("Loaded config from %s", path)
            layers.append(layer)

    layers.append(env_overrides())
    config = dict_to_config(merge_layers(*layers))

    if paths is None:
        _cached_config = config
    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config (used by tests)."""
    global _cached_config
    _cached_config = None


def reload_config() -> Config:
    """Reload config from files and notify callbacks."""
    config = load_config(reload=True)

    for callback in list(_reload_callbacks):
        try:
            callback(config)
        except Exception as e:
            _log.warning("Config reload callback error: %s", e)

    return config


def on_config_reload(callback: Callable[[Config], None]) -> Callable[[], None]:
    """Register a reload callback.

    Returns:
        A function that unregisters the callback.
    """
    _reload_callbacks.append(callback)

    def unregister() -> None:
        if callback in _reload_callbacks:
            _reload_callbacks.remove(callback)

    return unregister
