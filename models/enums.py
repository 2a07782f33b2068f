"""Enumerations for novels, chapters and chapter versions."""

from enum import Enum


class NovelStatus(str, Enum):
    DRAFT = "draft"
    WRITING = "writing"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ChapterType(str, Enum):
    """Descriptive tag only; all types behave the same in the tree."""
    VOLUME = "volume"
    CHAPTER = "chapter"
    SCENE = "scene"


class VersionType(str, Enum):
    SNAPSHOT = "snapshot"
    DIFF = "diff"
