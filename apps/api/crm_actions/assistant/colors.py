from __future__ import annotations

import re


STAGE_PALETTE = ("#3B82F6", "#10B981", "#F59E0B", "#EF4444", "#8B5CF6", "#6B7280")

NAMED_COLORS: dict[str, str] = {
    "blue": "#3B82F6",
    "green": "#10B981",
    "emerald": "#10B981",
    "amber": "#F59E0B",
    "yellow": "#EAB308",
    "orange": "#F97316",
    "red": "#EF4444",
    "purple": "#8B5CF6",
    "violet": "#8B5CF6",
    "pink": "#EC4899",
    "indigo": "#6366F1",
    "teal": "#14B8A6",
    "cyan": "#06B6D4",
    "gray": "#6B7280",
    "grey": "#6B7280",
    "black": "#111827",
    "white": "#FFFFFF",
}

_HEX_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def normalize_color(value: str | None) -> str | None:
    """Map a colour name or hex string to ``#RRGGBB``; ``None`` when unrecognised."""
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower().replace(" ", "")
    if candidate in NAMED_COLORS:
        return NAMED_COLORS[candidate]
    if not _HEX_RE.match(candidate):
        return None
    digits = candidate.lstrip("#")
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits.upper()}"


def is_valid_color(value: str | None) -> bool:
    return normalize_color(value) is not None


def palette_color(index: int) -> str:
    return STAGE_PALETTE[index % len(STAGE_PALETTE)]
