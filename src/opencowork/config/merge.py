"""Cascading merge for configuration layers."""

from __future__ import annotations

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge `override` on top of `base` without mutating either.

    - Nested dicts merge recursively
    - Lists are replaced, never concatenated
    - None in `override` leaves the base value untouched

    Args:
        base: Lower-priority layer.
        override: Higher-priority layer.

    Returns:
        A new merged dictionary.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Fold config layers left to right; later layers win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)
    return merged
