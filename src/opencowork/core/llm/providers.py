"""Provider presets.

Loads the Anthropic-compatible endpoint presets from providers.yaml and
merges them with the user's per-provider overrides.
"""

from __future__ import annotations

import importlib.resources
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import yaml

from opencowork.config.secrets import resolve_api_key

if TYPE_CHECKING:
    from opencowork.config.schema import LLMConfig


@dataclass
class ProviderPreset:
    """A packaged provider definition."""

    id: str
    name: str
    api_url: str | None
    model: str | None
    max_tokens: int
    env_var: str | None = None
    readonly_url: bool = True
    models: list[str] = field(default_factory=list)


@dataclass
class ResolvedProvider:
    """Effective settings for the active provider."""

    id: str
    model: str
    api_url: str | None
    api_key: str | None
    max_tokens: int


@lru_cache(maxsize=1)
def _load_providers_yaml() -> dict[str, Any]:
    files = importlib.resources.files("opencowork.core.llm")
    with importlib.resources.as_file(files.joinpath("providers.yaml")) as path:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}


def _build_presets() -> dict[str, ProviderPreset]:
    data = _load_providers_yaml()
    default_max = int(data.get("default_max_tokens", 131072))
    presets: dict[str, ProviderPreset] = {}
    for provider_id, entry in (data.get("providers") or {}).items():
        presets[provider_id] = ProviderPreset(
            id=provider_id,
            name=entry.get("name", provider_id),
            api_url=entry.get("api_url"),
            model=entry.get("model"),
            max_tokens=int(entry.get("max_tokens", default_max)),
            env_var=entry.get("env_var"),
            readonly_url=bool(entry.get("readonly_url", True)),
            models=list(entry.get("models") or []),
        )
    return presets


PROVIDER_PRESETS: dict[str, ProviderPreset] = _build_presets()


def get_preset(provider_id: str) -> ProviderPreset:
    """Look up a preset.

    Raises:
        ValueError: If the provider id is unknown.
    """
    try:
        return PROVIDER_PRESETS[provider_id]
    except KeyError:
        known = ", ".join(sorted(PROVIDER_PRESETS))
        raise ValueError(f"Unknown provider '{provider_id}' (known: {known})") from None


def resolve_provider(llm: LLMConfig, data_dir: str | None = None) -> ResolvedProvider:
    """Merge the active preset with user overrides and secrets.

    Preset URLs marked read-only ignore a user `api_url`.

    Raises:
        ValueError: If the provider is unknown or no model is configured.
    """
    preset = get_preset(llm.active_provider)
    override = llm.providers.get(preset.id)

    model = (override.model if override else None) or preset.model
    if not model:
        raise ValueError(f"Provider '{preset.id}' has no model configured")

    api_url = preset.api_url
    if override and override.api_url and (not preset.readonly_url or api_url is None):
        api_url = override.api_url

    max_tokens = (override.max_tokens if override else None) or preset.max_tokens
    api_key = resolve_api_key(override.api_key if override else None, preset.env_var, data_dir)

    return ResolvedProvider(
        id=preset.id,
        model=model,
        api_url=api_url,
        api_key=api_key,
        max_tokens=max_tokens,
    )
