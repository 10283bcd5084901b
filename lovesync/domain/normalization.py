from __future__ import annotations

from typing import Optional


def normalize_loose(value: Optional[str]) -> str:
    """Lowercase the value and keep only alphanumeric characters.

    ``str.isalnum`` is unicode-aware and locale independent, so "Don't Stop"
    and "dont  stop" normalize to the same key.
    """
    value = value or ""
    return "".join(c for c in value.lower() if c.isalnum())


def is_like(left: Optional[str], right: Optional[str]) -> bool:
    """Loose name equality used to pair local songs with loved tracks.

    Names that normalize to nothing (only punctuation or whitespace) never match.
    """
    left_n = normalize_loose(left)
    if not left_n:
        return False
    return left_n == normalize_loose(right)
