# util/functions.py
from typing import Any, Optional


def preview(text: str, max_chars: int = 60) -> str:
    """Short single-line preview for log lines (never the full quote)."""
    flat = " ".join((text or "").split())
    return flat if len(flat) <= max_chars else flat[:max_chars] + "…"


def as_positive_int(value: Any) -> Optional[int]:
    """
    Accept ints and integral floats (JSON numbers like 3.0); reject bools,
    strings and anything below 1.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 1 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value >= 1 else None
    return None
