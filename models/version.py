"""Chapter version records and revision query results."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from models.enums import VersionType


@dataclass
class ChapterVersion:
    """One point in a chapter's edit history.

    Snapshots carry ``content`` and no ``diff_data``; diffs carry a patch
    payload relative to ``parent_version_id`` and no content.
    """
    id: Optional[int] = None
    chapter_id: int = 0
    parent_version_id: Optional[int] = None
    version_type: VersionType = VersionType.SNAPSHOT
    content: Optional[str] = None
    diff_data: Optional[str] = None
    word_count: int = 0
    commit_message: str = ""
    is_auto_save: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_snapshot(self) -> bool:
        return self.version_type == VersionType.SNAPSHOT


@dataclass
class ChangeStats:
    insertions: int = 0
    deletions: int = 0
    unchanged: int = 0
    total_changes: int = 0


@dataclass
class SimilarChunk:
    """A pair of near-duplicate lines between two texts."""
    old_text: str
    new_text: str
    similarity: float
    old_index: int
    new_index: int


@dataclass
class VersionComparison:
    version1: ChapterVersion
    version2: ChapterVersion
    diff_text: str
    statistics: ChangeStats
    similar_chunks: list[SimilarChunk] = field(default_factory=list)
    old_text: str = ""
    new_text: str = ""


@dataclass
class VersionTimelineEntry:
    version_id: int
    created_at: Optional[datetime]
    commit_message: str
    version_type: VersionType
    word_count: int
    is_auto_save: bool


@dataclass
class VersionPatterns:
    """Save-habit summary for one chapter's history."""
    total_versions: int = 0
    auto_save_count: int = 0
    manual_save_count: int = 0
    average_seconds_between_saves: int = 0
    first_version_at: Optional[datetime] = None
    last_version_at: Optional[datetime] = None
