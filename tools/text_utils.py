"""Text utilities: character counting and line splitting."""

import re


def count_total_chars(text: str) -> int:
    """Count all non-whitespace characters including punctuation.

    This is the word count stored on chapters and versions; it treats CJK
    and Latin text alike.
    """
    if not text:
        return 0
    return len(re.sub(r"\s", "", text))


def split_lines(text: str) -> list[str]:
    """Split text on newlines, dropping ``\\r`` and a trailing empty line."""
    if not text:
        return []
    lines = [line.rstrip("\r") for line in text.split("\n")]
    if text.endswith("\n"):
        lines.pop()
    return lines


def preview(text: str, limit: int = 40) -> str:
    """Single-line preview of text for listings."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "..."
