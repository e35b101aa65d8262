"""Colour and tag normalisation for stored highlights."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from highlightkeeper.config import DEFAULT_COLOR, DEFAULT_PALETTE

_HEX6 = re.compile(r"#[0-9a-f]{6}")
_HEX3 = re.compile(r"#[0-9a-f]{3}")
_RGB = re.compile(
    r"rgba?\((\d{1,3}),\s*(\d{1,3}),\s*(\d{1,3})(?:,\s*(\d+(?:\.\d+)?))?\)"
)
_TAG_SPLIT = re.compile(r"[\s,]+")


def normalize_color(value: Any, default: str = DEFAULT_COLOR) -> str:
    """Lower-case ``#rrggbb`` for hex or ``rgb()``/``rgba()`` input.

    Anything unrecognised becomes *default*.  The alpha channel of
    ``rgba()`` is dropped.
    """
    if not isinstance(value, str):
        return default
    trimmed = value.strip().lower()
    if _HEX6.fullmatch(trimmed):
        return trimmed
    if _HEX3.fullmatch(trimmed):
        return "#" + "".join(ch * 2 for ch in trimmed[1:])
    match = _RGB.fullmatch(trimmed)
    if match:
        channels = (max(0, min(255, int(match.group(i)))) for i in (1, 2, 3))
        return "#" + "".join(f"{channel:02x}" for channel in channels)
    return default


def normalize_palette(values: Any) -> list[str]:
    """Normalised, de-duplicated palette; the default palette if empty."""
    if not isinstance(values, list):
        return list(DEFAULT_PALETTE)
    palette: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        color = normalize_color(value)
        if color not in palette:
            palette.append(color)
    return palette or list(DEFAULT_PALETTE)


def normalize_tags(value: Any) -> list[str]:
    """Tags from a list or a comma/whitespace separated string.

    >>> normalize_tags("law, torts  law")
    ['law', 'torts']
    """
    if isinstance(value, str):
        parts: Iterable[Any] = _TAG_SPLIT.split(value)
    elif isinstance(value, list):
        parts = value
    else:
        return []
    tags: list[str] = []
    for part in parts:
        tag = str(part).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags
