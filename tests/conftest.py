"""Shared pytest fixtures for the novelkeep test suite."""

import copy
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from config.exceptions import (
    ChapterNotFoundError,
    NovelNotFoundError,
    VersionNotFoundError,
)
from models.chapter import Chapter, sort_key_between
from models.enums import ChapterType
from models.novel import Novel
from models.version import ChapterVersion
from tools.text_utils import count_total_chars


# ---------------------------------------------------------------------------
# In-memory document store
# ---------------------------------------------------------------------------

class InMemoryStore:
    """Dict-backed DocumentStore used to test the engine without SQLite."""

    def __init__(self):
        self.novels: dict[int, Novel] = {}
        self.chapters: dict[int, Chapter] = {}
        self.versions: dict[int, ChapterVersion] = {}
        self._next_id = {"novel": 1, "chapter": 1, "version": 1}
        self._in_transaction = False

    def _allocate(self, kind: str) -> int:
        value = self._next_id[kind]
        self._next_id[kind] += 1
        return value

    @contextmanager
    def transaction(self):
        if self._in_transaction:
            yield self
            return
        saved = copy.deepcopy((self.novels, self.chapters, self.versions, self._next_id))
        self._in_transaction = True
        try:
            yield self
        except Exception:
            self.novels, self.chapters, self.versions, self._next_id = saved
            raise
        finally:
            self._in_transaction = False

    # ---- Novels ----

    def create_novel(self, novel: Novel) -> int:
        novel_id = self._allocate("novel")
        now = datetime.now(timezone.utc)
        self.novels[novel_id] = replace(novel, id=novel_id, created_at=now, updated_at=now)
        return novel_id

    def get_novel(self, novel_id: int) -> Novel:
        if novel_id not in self.novels:
            raise NovelNotFoundError(novel_id)
        return copy.copy(self.novels[novel_id])

    def list_novels(self) -> list[Novel]:
        return [copy.copy(self.novels[k]) for k in sorted(self.novels)]

    def delete_novel(self, novel_id: int):
        for chapter_id in [c.id for c in self.chapters.values() if c.novel_id == novel_id]:
            self.delete_chapter(chapter_id)
        self.novels.pop(novel_id, None)

    # ---- Chapters ----

    def create_chapter(self, novel_id, title, parent_id=None, chapter_type=ChapterType.CHAPTER):
        if novel_id not in self.novels:
            raise NovelNotFoundError(novel_id)
        siblings = [
            c for c in self.chapters.values()
            if c.novel_id == novel_id and c.parent_id == parent_id
        ]
        now = datetime.now(timezone.utc)
        chapter = Chapter(
            id=self._allocate("chapter"), novel_id=novel_id, parent_id=parent_id,
            title=title, sort_path=sort_key_between(
                max((c.sort_path for c in siblings), default=None), None
            ),
            chapter_type=chapter_type, created_at=now, updated_at=now,
        )
        self.chapters[chapter.id] = chapter
        return copy.copy(chapter)

    def get_chapter(self, chapter_id: int) -> Chapter:
        if chapter_id not in self.chapters:
            raise ChapterNotFoundError(chapter_id)
        return copy.copy(self.chapters[chapter_id])

    def get_chapters_by_novel(self, novel_id: int) -> list[Chapter]:
        chapters = [
            copy.copy(c) for c in self.chapters.values()
            if c.novel_id == novel_id and not c.is_archived
        ]
        return sorted(chapters, key=lambda c: (c.sort_path, c.id))

    def update_chapter_content(self, chapter_id: int, content: str):
        chapter = self.chapters.get(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError(chapter_id)
        chapter.content = content
        chapter.word_count = count_total_chars(content)
        chapter.updated_at = datetime.now(timezone.utc)

    def update_chapter_parent(self, chapter_id, parent_id, sort_path):
        chapter = self.chapters.get(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError(chapter_id)
        chapter.parent_id = parent_id
        chapter.sort_path = sort_path

    def update_chapter(self, chapter: Chapter):
        if chapter.id not in self.chapters:
            raise ChapterNotFoundError(chapter.id)
        chapter.word_count = count_total_chars(chapter.content)
        self.chapters[chapter.id] = copy.copy(chapter)

    def archive_chapter(self, chapter_id: int):
        if chapter_id not in self.chapters:
            raise ChapterNotFoundError(chapter_id)
        self.chapters[chapter_id].is_archived = True

    def delete_chapter(self, chapter_id: int):
        if self.chapters.pop(chapter_id, None) is None:
            raise ChapterNotFoundError(chapter_id)
        for child in self.chapters.values():
            if child.parent_id == chapter_id:
                child.parent_id = None
        for version_id in [v.id for v in self.versions.values() if v.chapter_id == chapter_id]:
            del self.versions[version_id]

    # ---- Versions ----

    def create_chapter_version(self, version: ChapterVersion) -> ChapterVersion:
        version.id = self._allocate("version")
        if version.created_at is None:
            version.created_at = datetime.now(timezone.utc)
        self.versions[version.id] = copy.copy(version)
        return version

    def get_chapter_versions(self, chapter_id: int) -> list[ChapterVersion]:
        versions = [copy.copy(v) for v in self.versions.values() if v.chapter_id == chapter_id]
        return sorted(versions, key=lambda v: v.id, reverse=True)

    def get_chapter_version(self, version_id: int) -> ChapterVersion:
        if version_id not in self.versions:
            raise VersionNotFoundError(version_id)
        return copy.copy(self.versions[version_id])

    def update_chapter_version(self, version: ChapterVersion):
        if version.id not in self.versions:
            raise VersionNotFoundError(version.id)
        self.versions[version.id] = copy.copy(version)

    def delete_chapter_versions(self, version_ids) -> int:
        deleted = 0
        for version_id in version_ids:
            if self.versions.pop(version_id, None) is not None:
                deleted += 1
        for version in self.versions.values():
            if version.parent_version_id not in self.versions:
                version.parent_version_id = None
        return deleted


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_novelkeep.db"


@pytest.fixture
def db(tmp_db_path):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(tmp_db_path)


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_db_path):
    """Run a test against both the SQLite database and the in-memory store."""
    if request.param == "sqlite":
        from models.database import Database
        return Database(tmp_db_path)
    return InMemoryStore()


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "novelkeep.db",
        log_dir=tmp_path / "logs",
        snapshot_interval=10,
        auto_save_keep_count=3,
    )


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def diff_engine():
    from tools.diff_engine import TextDiffEngine
    return TextDiffEngine()


@pytest.fixture
def revisions(store, settings, diff_engine):
    from manuscript.revision_chain import RevisionChain
    return RevisionChain(store, diff_engine, settings)


@pytest.fixture
def manager(store, settings, revisions):
    from manuscript.chapter_manager import ChapterManager
    return ChapterManager(store, revisions, settings)


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_novel(store):
    """Insert and return a sample Novel record."""
    novel = Novel(title="长夜将明", author="测试作者", description="一部测试小说")
    novel.id = store.create_novel(novel)
    return novel


@pytest.fixture
def sample_chapter(store, sample_novel):
    """Insert and return an empty sample Chapter."""
    return store.create_chapter(sample_novel.id, "Ch1")


# ---------------------------------------------------------------------------
# Logging fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def reset_logging():
    """Undo setup_logging() so file handlers do not leak into later tests."""
    import logging
    from config.logging_config import REVISION_LOGGER

    root = logging.getLogger()
    revision = logging.getLogger(REVISION_LOGGER)
    levels = (root.level, revision.level)
    yield
    for logger in (root, revision):
        for handler in list(logger.handlers):
            if type(handler).__module__.startswith("_pytest"):
                continue
            logger.removeHandler(handler)
            handler.close()
    root.setLevel(levels[0])
    revision.setLevel(levels[1])
