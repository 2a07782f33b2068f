"""Chapter data model and sort key generation."""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.enums import ChapterType

_DIGITS = "0123456789"
_BLOCK = re.compile(r"\d{6}")


def sort_key_between(lower: Optional[str], upper: Optional[str]) -> str:
    """Return an ordering key that sorts strictly between ``lower`` and ``upper``.

    Either bound may be None, meaning open. Keys compare as plain strings, so
    a chapter can be placed anywhere among its siblings without rewriting
    their keys. Appending after a key that starts with a six-digit block
    bumps that block (``"000001"``, ``"000002"``, ...), which keeps keys short
    for the common case; any other gap is split digit by digit. Keys split
    from a gap never end in ``"0"``, so there is always room below them.

    Raises:
        ValueError: The bounds are out of order or leave no room between them.
    """
    lower = lower or ""
    if upper is not None and lower >= upper:
        raise ValueError(f"Sort keys out of order: {lower!r} >= {upper!r}")

    if upper is None:
        block = _BLOCK.match(lower)
        if block and int(block.group()) < 999_999:
            return f"{int(block.group()) + 1:06d}"
        if not lower:
            return "000001"

    key = []
    ceiling = upper
    i = 0
    while True:
        lo = lower[i] if i < len(lower) else None
        hi = ceiling[i] if ceiling is not None and i < len(ceiling) else None
        if lo is not None and lo == hi:
            key.append(lo)
            i += 1
            continue
        candidates = [
            d for d in _DIGITS[1:]
            if (lo is None or d > lo) and (hi is None or d < hi)
        ]
        if candidates:
            key.append(candidates[len(candidates) // 2])
            break
        if lo is not None:
            # Keep lower's character; everything after it is already below upper
            key.append(lo)
            ceiling = None
        elif hi is not None and hi >= "0":
            key.append("0")
            if hi > "0":
                ceiling = None
        else:
            raise ValueError(f"No key fits below {upper!r}")
        i += 1

    result = "".join(key)
    if not lower < result or (upper is not None and not result < upper):
        raise ValueError(f"No key fits between {lower!r} and {upper!r}")
    return result


@dataclass
class Chapter:
    """Represents a single node of authored content."""
    id: Optional[int] = None
    novel_id: int = 0
    parent_id: Optional[int] = None
    title: str = ""
    content: str = ""
    sort_path: str = ""
    word_count: int = 0
    chapter_type: ChapterType = ChapterType.CHAPTER
    is_archived: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
