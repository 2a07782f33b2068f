"""Configuration package: settings, logging, and exceptions."""

from config.exceptions import (
    NovelKeepError,
    ValidationError,
    CycleError,
    SortPathOutOfRangeError,
    InvalidTitleError,
    NotFoundError,
    NovelNotFoundError,
    ChapterNotFoundError,
    VersionNotFoundError,
    IntegrityError,
    ChainIntegrityError,
    PatchApplyError,
    StoreError,
    ReconstructionCancelledError,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "NovelKeepError",
    "ValidationError",
    "CycleError",
    "SortPathOutOfRangeError",
    "InvalidTitleError",
    "NotFoundError",
    "NovelNotFoundError",
    "ChapterNotFoundError",
    "VersionNotFoundError",
    "IntegrityError",
    "ChainIntegrityError",
    "PatchApplyError",
    "StoreError",
    "ReconstructionCancelledError",
]
