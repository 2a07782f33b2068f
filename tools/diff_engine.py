"""Character-level text diffing for chapter revisions.

Alignment comes from diff-match-patch (Myers' O(ND) algorithm over code
points). Three outputs are built on top of it:

- a human-readable rendering where deleted runs read ``[-...]`` and inserted
  runs read ``[+...]``;
- change statistics and near-duplicate line detection for comparisons;
- a compact patch payload stored on Diff versions, together with its exact
  inverse ``apply_patch``.

The payload is a JSON list of operations: ``["=", n]`` keeps ``n``
characters of the base text, ``["-", n]`` drops ``n`` characters, and
``["+", text]`` inserts ``text``. Unchanged text is never repeated in it.
"""

import difflib
import json
import logging
from typing import Optional

from diff_match_patch import diff_match_patch

from models.version import ChangeStats, SimilarChunk
from config.exceptions import PatchApplyError
from tools.text_utils import split_lines

logger = logging.getLogger(__name__)

DELETE_OPEN = "[-"
INSERT_OPEN = "[+"
MARK_CLOSE = "]"

_KEEP = "="
_DROP = "-"
_ADD = "+"


class TextDiffEngine:
    """Computes, renders and replays character-level differences."""

    def __init__(self, timeout: float = 0.0, similarity_threshold: float = 0.7):
        self._dmp = diff_match_patch()
        # 0 disables the deadline so alignments are optimal and reproducible
        self._dmp.Diff_Timeout = timeout
        self.similarity_threshold = similarity_threshold

    @classmethod
    def from_settings(cls, settings) -> "TextDiffEngine":
        return cls(
            timeout=settings.diff_timeout,
            similarity_threshold=settings.similarity_threshold,
        )

    def align(self, old_text: str, new_text: str) -> list[tuple[int, str]]:
        """Return diff-match-patch ops: (-1 delete | 0 equal | 1 insert, text)."""
        return self._dmp.diff_main(old_text or "", new_text or "", False)

    def diff(self, old_text: str, new_text: str) -> str:
        """Render the edit script with inline delete/insert markers."""
        parts = []
        for op, text in self.align(old_text, new_text):
            if op == self._dmp.DIFF_DELETE:
                parts.append(f"{DELETE_OPEN}{text}{MARK_CLOSE}")
            elif op == self._dmp.DIFF_INSERT:
                parts.append(f"{INSERT_OPEN}{text}{MARK_CLOSE}")
            else:
                parts.append(text)
        return "".join(parts)

    def change_statistics(self, old_text: str, new_text: str) -> ChangeStats:
        stats = ChangeStats()
        for op, text in self.align(old_text, new_text):
            if op == self._dmp.DIFF_DELETE:
                stats.deletions += len(text)
            elif op == self._dmp.DIFF_INSERT:
                stats.insertions += len(text)
            else:
                stats.unchanged += len(text)
        stats.total_changes = stats.insertions + stats.deletions
        return stats

    def similarity(self, line1: str, line2: str) -> float:
        """Share of characters left untouched, relative to the longer line."""
        longest = max(len(line1), len(line2))
        if longest == 0:
            return 1.0
        stats = self.change_statistics(line1, line2)
        return max(0.0, 1.0 - stats.total_changes / longest)

    def similar_chunks(
        self,
        text1: str,
        text2: str,
        min_length: int = 10,
        threshold: Optional[float] = None,
    ) -> list[SimilarChunk]:
        """Find line pairs that are near-duplicates of each other.

        Every line of ``text1`` is compared with every line of ``text2``;
        only lines of at least ``min_length`` characters take part.
        """
        if threshold is None:
            threshold = self.similarity_threshold
        lines1 = split_lines(text1)
        lines2 = split_lines(text2)

        chunks = []
        for i, line1 in enumerate(lines1):
            if len(line1) < min_length:
                continue
            for j, line2 in enumerate(lines2):
                if len(line2) < min_length:
                    continue
                score = self.similarity(line1, line2)
                if score > threshold:
                    chunks.append(SimilarChunk(
                        old_text=line1,
                        new_text=line2,
                        similarity=score,
                        old_index=i,
                        new_index=j,
                    ))
        return chunks

    # ---- Patch payload ----

    def make_patch(self, old_text: str, new_text: str) -> str:
        """Encode the edit from ``old_text`` to ``new_text`` as a patch payload."""
        ops = []
        for op, text in self.align(old_text, new_text):
            if op == self._dmp.DIFF_DELETE:
                ops.append([_DROP, len(text)])
            elif op == self._dmp.DIFF_INSERT:
                ops.append([_ADD, text])
            else:
                ops.append([_KEEP, len(text)])
        return json.dumps(ops, ensure_ascii=False, separators=(",", ":"))

    def apply_patch(self, base_text: str, payload: str) -> str:
        """Rebuild the new text from ``base_text`` and a ``make_patch`` payload.

        Raises:
            PatchApplyError: If the payload is malformed or does not span
                exactly the base text.
        """
        try:
            ops = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise PatchApplyError(f"Malformed patch payload: {e}") from e
        if not isinstance(ops, list):
            raise PatchApplyError("Patch payload must be a list of operations")

        base_text = base_text or ""
        pointer = 0
        out = []
        for entry in ops:
            if not isinstance(entry, list) or len(entry) != 2:
                raise PatchApplyError(f"Invalid patch operation: {entry!r}")
            tag, arg = entry
            if tag == _ADD and isinstance(arg, str):
                out.append(arg)
            elif tag in (_KEEP, _DROP) and isinstance(arg, int) and arg >= 0:
                if pointer + arg > len(base_text):
                    raise PatchApplyError(
                        "Patch runs past the end of the base text",
                        {"base_length": len(base_text), "offset": pointer + arg},
                    )
                if tag == _KEEP:
                    out.append(base_text[pointer:pointer + arg])
                pointer += arg
            else:
                raise PatchApplyError(f"Invalid patch operation: {entry!r}")

        if pointer != len(base_text):
            raise PatchApplyError(
                "Patch does not cover the whole base text",
                {"base_length": len(base_text), "consumed": pointer},
            )
        return "".join(out)

    def create_patch(self, old_text: str, new_text: str, context: int = 3) -> str:
        """Line-oriented unified diff for reading in a terminal or a log."""
        lines = difflib.unified_diff(
            (old_text or "").splitlines(keepends=True),
            (new_text or "").splitlines(keepends=True),
            fromfile="old",
            tofile="new",
            n=context,
        )
        return "".join(lines)
