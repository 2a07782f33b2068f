"""Custom exception hierarchy for the chapter tree and revision engine."""

from typing import Optional


class NovelKeepError(Exception):
    """Base exception for all novelkeep errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Validation Errors ----

class ValidationError(NovelKeepError):
    """Input rejected before any mutation was attempted."""


class CycleError(ValidationError):
    """Moving a chapter under the requested parent would create a cycle."""

    def __init__(self, chapter_id: int, new_parent_id: int):
        super().__init__(
            f"Moving chapter {chapter_id} under {new_parent_id} would create a cycle",
            {"chapter_id": chapter_id, "new_parent_id": new_parent_id},
        )
        self.chapter_id = chapter_id
        self.new_parent_id = new_parent_id


class SortPathOutOfRangeError(ValidationError):
    """Insert position lies outside the sibling list."""

    def __init__(self, position: int, sibling_count: int):
        super().__init__(
            f"Position {position} out of range [0, {sibling_count}]",
            {"position": position, "sibling_count": sibling_count},
        )
        self.position = position
        self.sibling_count = sibling_count


class InvalidTitleError(ValidationError):
    """Chapter or novel title is empty or invalid."""


# ---- Lookup Errors ----

class NotFoundError(NovelKeepError):
    """A referenced record does not exist."""


class NovelNotFoundError(NotFoundError):
    def __init__(self, novel_id: int):
        super().__init__(f"Novel {novel_id} not found", {"novel_id": novel_id})
        self.novel_id = novel_id


class ChapterNotFoundError(NotFoundError):
    def __init__(self, chapter_id: int):
        super().__init__(f"Chapter {chapter_id} not found", {"chapter_id": chapter_id})
        self.chapter_id = chapter_id


class VersionNotFoundError(NotFoundError):
    def __init__(self, version_id: int):
        super().__init__(f"Version {version_id} not found", {"version_id": version_id})
        self.version_id = version_id


# ---- Integrity Errors ----

class IntegrityError(NovelKeepError):
    """Stored data violates a structural invariant."""


class ChainIntegrityError(IntegrityError):
    """A version chain is broken and cannot be reconstructed."""

    def __init__(self, version_id: int, reason: str):
        super().__init__(
            f"Version chain broken at {version_id}: {reason}",
            {"version_id": version_id, "reason": reason},
        )
        self.version_id = version_id
        self.reason = reason


class PatchApplyError(IntegrityError):
    """A stored patch payload does not fit the text it is applied to."""


# ---- Store Errors ----

class StoreError(NovelKeepError):
    """Underlying persistence operation failed."""


# ---- Reconstruction ----

class ReconstructionCancelledError(NovelKeepError):
    """Content reconstruction was cancelled or timed out."""

    def __init__(self, version_id: int, message: str = ""):
        super().__init__(
            message or f"Reconstruction of version {version_id} cancelled",
            {"version_id": version_id},
        )
        self.version_id = version_id
