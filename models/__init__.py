"""Models package: records, enums, and the document store."""

from models.database import Database
from models.novel import Novel
from models.chapter import Chapter, sort_key_between
from models.version import (
    ChapterVersion,
    ChangeStats,
    SimilarChunk,
    VersionComparison,
    VersionTimelineEntry,
    VersionPatterns,
)
from models.store import DocumentStore
from models.enums import NovelStatus, ChapterType, VersionType

__all__ = [
    "Database",
    "DocumentStore",
    "Novel",
    "Chapter",
    "sort_key_between",
    "ChapterVersion",
    "ChangeStats",
    "SimilarChunk",
    "VersionComparison",
    "VersionTimelineEntry",
    "VersionPatterns",
    "NovelStatus",
    "ChapterType",
    "VersionType",
]
