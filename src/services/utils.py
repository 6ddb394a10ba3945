"""Shared utility functions for services."""
import re
from typing import Optional

# Text the narrative backend writes when it has nothing to say
_NULL_NARRATIVES = {"null", "none", "undefined", "n/a"}


def to_float(value, default: float = 0.0) -> float:
    """Coerce a store value into a float, falling back to *default*.

    Handles None, numeric strings like '12.5' or '12.5%', and real numbers.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace("%", "").replace(",", "").strip()
        if not cleaned:
            return default
        try:
            return float(cleaned)
        except ValueError:
            return default
    return default


def to_int(value, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def is_blank_narrative(text: Optional[str]) -> bool:
    """Return True when a narrative field should be treated as absent."""
    if text is None:
        return True
    if not isinstance(text, str):
        return True
    stripped = text.strip()
    if not stripped:
        return True
    return stripped.strip('"\'').lower() in _NULL_NARRATIVES


def clean_narrative(text: Optional[str]) -> Optional[str]:
    return None if is_blank_narrative(text) else text.strip()


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def format_score(value: float) -> str:
    return f"{value:.1f}"


def sanitize_filename(name: str) -> str:
    """Replace everything but ASCII letters and digits with underscores."""
    cleaned = re.sub(r"[^A-Za-z0-9]", "_", (name or "").strip())
    return cleaned or "test"
