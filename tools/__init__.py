"""Tools package: text diffing and text utilities."""

from tools.text_utils import count_total_chars, split_lines, preview
from tools.diff_engine import TextDiffEngine

__all__ = [
    "TextDiffEngine",
    "count_total_chars",
    "split_lines",
    "preview",
]
