"""Text helpers for extracted document content."""

from __future__ import annotations

from typing import Iterable


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def truncate_text(text: str, max_chars: int | None) -> str:
    """Cut text down to ``max_chars`` characters; ``None`` or 0 keeps everything."""
    if not max_chars or len(text) <= max_chars:
        return text
    return text[:max_chars]


def looks_like_text(data: bytes, *, sample_size: int = 8192) -> bool:
    """Heuristic check that a byte buffer holds human-readable text."""
    if not data:
        return True
    sample = data[:sample_size]
    if b"\x00" in sample:
        return False
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as exc:
        # A multi-byte sequence split at the sample boundary is still text.
        if len(data) <= sample_size or exc.start < len(sample) - 4:
            return False
    return True
