"""SQLite database initialization and CRUD operations."""

import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from config.exceptions import (
    ChapterNotFoundError,
    NovelNotFoundError,
    StoreError,
    VersionNotFoundError,
)
from models.chapter import Chapter, sort_key_between
from models.enums import ChapterType, NovelStatus, VersionType
from models.novel import Novel
from models.version import ChapterVersion
from tools.text_utils import count_total_chars

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS novels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    author TEXT DEFAULT '',
    description TEXT DEFAULT '',
    status TEXT DEFAULT 'draft'
        CHECK(status IN ('draft', 'writing', 'completed', 'abandoned')),
    word_count INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    novel_id INTEGER NOT NULL REFERENCES novels(id) ON DELETE CASCADE,
    parent_id INTEGER REFERENCES chapters(id) ON DELETE SET NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    sort_path TEXT NOT NULL,
    word_count INTEGER DEFAULT 0,
    chapter_type TEXT DEFAULT 'chapter'
        CHECK(chapter_type IN ('volume', 'chapter', 'scene')),
    is_archived BOOLEAN DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chapter_versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chapter_id INTEGER NOT NULL REFERENCES chapters(id) ON DELETE CASCADE,
    parent_version_id INTEGER REFERENCES chapter_versions(id) ON DELETE SET NULL,
    version_type TEXT NOT NULL DEFAULT 'diff'
        CHECK(version_type IN ('snapshot', 'diff')),
    content TEXT,
    diff_data TEXT,
    word_count INTEGER DEFAULT 0,
    commit_message TEXT DEFAULT '',
    is_auto_save BOOLEAN DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chapters_novel ON chapters(novel_id);
CREATE INDEX IF NOT EXISTS idx_chapters_parent ON chapters(parent_id);
CREATE INDEX IF NOT EXISTS idx_chapters_sort_path ON chapters(sort_path);
CREATE INDEX IF NOT EXISTS idx_chapter_versions_chapter ON chapter_versions(chapter_id);

-- Keep the novel's word count equal to the sum over its active chapters
CREATE TRIGGER IF NOT EXISTS insert_novel_word_count
AFTER INSERT ON chapters
BEGIN
    UPDATE novels SET word_count = (
        SELECT COALESCE(SUM(word_count), 0) FROM chapters
        WHERE novel_id = NEW.novel_id AND is_archived = 0
    ) WHERE id = NEW.novel_id;
END;

CREATE TRIGGER IF NOT EXISTS update_novel_word_count
AFTER UPDATE OF word_count, is_archived ON chapters
BEGIN
    UPDATE novels SET word_count = (
        SELECT COALESCE(SUM(word_count), 0) FROM chapters
        WHERE novel_id = NEW.novel_id AND is_archived = 0
    ) WHERE id = NEW.novel_id;
END;

CREATE TRIGGER IF NOT EXISTS delete_novel_word_count
AFTER DELETE ON chapters
BEGIN
    UPDATE novels SET word_count = (
        SELECT COALESCE(SUM(word_count), 0) FROM chapters
        WHERE novel_id = OLD.novel_id AND is_archived = 0
    ) WHERE id = OLD.novel_id;
END;
"""

_CHAPTER_COLUMNS = (
    "id, novel_id, parent_id, title, content, sort_path, word_count, "
    "chapter_type, is_archived, created_at, updated_at"
)

_VERSION_COLUMNS = (
    "id, chapter_id, parent_version_id, version_type, content, diff_data, "
    "word_count, commit_message, is_auto_save, created_at"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str], field: str = "timestamp") -> datetime:
    """Parse an RFC 3339 timestamp, falling back to now for display purposes."""
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        logger.warning("Unparseable %s %r, using current time", field, value)
        return utc_now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """SQLite-backed document store for novels, chapters and versions."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the active transaction's connection, or a fresh auto-committing one."""
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return
        conn = self._get_conn()
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Group several store calls into one atomic unit.

        Nested calls join the outer transaction. Any exception rolls back
        every statement issued inside the block.
        """
        if getattr(self._local, "conn", None) is not None:
            yield self
            return
        conn = self._get_conn()
        self._local.conn = conn
        try:
            with conn:
                yield self
        except sqlite3.Error as e:
            raise StoreError(f"Transaction failed: {e}") from e
        finally:
            self._local.conn = None
            conn.close()

    def _init_db(self):
        with self._connection() as conn:
            conn.executescript(_CREATE_TABLES_SQL)

    def backup_database(self, target_path: str | Path) -> Path:
        """Create a backup copy of the database.

        Args:
            target_path: Path for the backup file.

        Returns:
            Path to the backup file.
        """
        target = Path(target_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(self.db_path), str(target))
        logger.info("Database backed up to %s", target)
        return target

    # ---- Novel CRUD ----

    def create_novel(self, novel: Novel) -> int:
        now = utc_now().isoformat()
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO novels (title, author, description, status, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (novel.title, novel.author, novel.description, novel.status.value, now, now),
            )
            return cursor.lastrowid

    def get_novel(self, novel_id: int) -> Novel:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM novels WHERE id = ?", (novel_id,)).fetchone()
            if not row:
                raise NovelNotFoundError(novel_id)
            return self._row_to_novel(row)

    def list_novels(self) -> list[Novel]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM novels ORDER BY id").fetchall()
            return [self._row_to_novel(r) for r in rows]

    def update_novel(self, novel: Novel):
        with self._connection() as conn:
            conn.execute(
                "UPDATE novels SET title=?, author=?, description=?, status=?, updated_at=? "
                "WHERE id=?",
                (novel.title, novel.author, novel.description, novel.status.value,
                 utc_now().isoformat(), novel.id),
            )

    def delete_novel(self, novel_id: int):
        """Delete a novel; chapters and their versions cascade."""
        with self._connection() as conn:
            conn.execute("DELETE FROM novels WHERE id = ?", (novel_id,))
        logger.info("Novel %d and all associated data deleted", novel_id)

    def _row_to_novel(self, row) -> Novel:
        return Novel(
            id=row["id"], title=row["title"], author=row["author"] or "",
            description=row["description"] or "",
            status=NovelStatus(row["status"]),
            word_count=row["word_count"] or 0,
            created_at=parse_timestamp(row["created_at"], "novel created_at"),
            updated_at=parse_timestamp(row["updated_at"], "novel updated_at"),
        )

    # ---- Chapter CRUD ----

    def create_chapter(
        self,
        novel_id: int,
        title: str,
        parent_id: Optional[int] = None,
        chapter_type: ChapterType = ChapterType.CHAPTER,
    ) -> Chapter:
        now = utc_now()
        with self._connection() as conn:
            if not conn.execute("SELECT 1 FROM novels WHERE id = ?", (novel_id,)).fetchone():
                raise NovelNotFoundError(novel_id)
            # New chapters append after every sibling, archived ones included
            last = conn.execute(
                "SELECT MAX(sort_path) AS last FROM chapters WHERE novel_id = ? AND parent_id IS ?",
                (novel_id, parent_id),
            ).fetchone()["last"]
            chapter = Chapter(
                novel_id=novel_id,
                parent_id=parent_id,
                title=title,
                content="",
                sort_path=sort_key_between(last, None),
                word_count=0,
                chapter_type=chapter_type,
                created_at=now,
                updated_at=now,
            )
            cursor = conn.execute(
                "INSERT INTO chapters (novel_id, parent_id, title, content, sort_path, "
                "word_count, chapter_type, is_archived, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (chapter.novel_id, chapter.parent_id, chapter.title, chapter.content,
                 chapter.sort_path, chapter.word_count, chapter.chapter_type.value,
                 chapter.is_archived, now.isoformat(), now.isoformat()),
            )
            chapter.id = cursor.lastrowid
        return chapter

    def get_chapter(self, chapter_id: int) -> Chapter:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_CHAPTER_COLUMNS} FROM chapters WHERE id = ?", (chapter_id,)
            ).fetchone()
            if not row:
                raise ChapterNotFoundError(chapter_id)
            return self._row_to_chapter(row)

    def get_chapters_by_novel(self, novel_id: int) -> list[Chapter]:
        """Return the novel's active chapters ordered by sort path."""
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_CHAPTER_COLUMNS} FROM chapters "
                "WHERE novel_id = ? AND is_archived = 0 ORDER BY sort_path, id",
                (novel_id,),
            ).fetchall()
            chapters = [self._row_to_chapter(r) for r in rows]
        logger.debug("Loaded %d chapters for novel %d", len(chapters), novel_id)
        return chapters

    def update_chapter_content(self, chapter_id: int, content: str):
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE chapters SET content = ?, word_count = ?, updated_at = ? WHERE id = ?",
                (content, count_total_chars(content), utc_now().isoformat(), chapter_id),
            )
            if cursor.rowcount == 0:
                raise ChapterNotFoundError(chapter_id)

    def update_chapter_parent(self, chapter_id: int, parent_id: Optional[int], sort_path: str):
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE chapters SET parent_id = ?, sort_path = ?, updated_at = ? WHERE id = ?",
                (parent_id, sort_path, utc_now().isoformat(), chapter_id),
            )
            if cursor.rowcount == 0:
                raise ChapterNotFoundError(chapter_id)

    def update_chapter(self, chapter: Chapter):
        """Persist title, content and type; word count is recomputed from content."""
        chapter.word_count = count_total_chars(chapter.content)
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE chapters SET title=?, content=?, word_count=?, chapter_type=?, "
                "updated_at=? WHERE id=?",
                (chapter.title, chapter.content, chapter.word_count,
                 chapter.chapter_type.value, utc_now().isoformat(), chapter.id),
            )
            if cursor.rowcount == 0:
                raise ChapterNotFoundError(chapter.id)

    def archive_chapter(self, chapter_id: int):
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE chapters SET is_archived = 1, updated_at = ? WHERE id = ?",
                (utc_now().isoformat(), chapter_id),
            )
            if cursor.rowcount == 0:
                raise ChapterNotFoundError(chapter_id)

    def delete_chapter(self, chapter_id: int):
        """Delete a chapter; its versions cascade and its children become roots."""
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM chapters WHERE id = ?", (chapter_id,))
            if cursor.rowcount == 0:
                raise ChapterNotFoundError(chapter_id)
        logger.info("Chapter %d and its versions deleted", chapter_id)

    def _row_to_chapter(self, row) -> Chapter:
        return Chapter(
            id=row["id"], novel_id=row["novel_id"], parent_id=row["parent_id"],
            title=row["title"], content=row["content"] or "",
            sort_path=row["sort_path"], word_count=row["word_count"] or 0,
            chapter_type=ChapterType(row["chapter_type"]),
            is_archived=bool(row["is_archived"]),
            created_at=parse_timestamp(row["created_at"], "chapter created_at"),
            updated_at=parse_timestamp(row["updated_at"], "chapter updated_at"),
        )

    # ---- Chapter Version CRUD ----

    def create_chapter_version(self, version: ChapterVersion) -> ChapterVersion:
        if version.created_at is None:
            version.created_at = utc_now()
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO chapter_versions (chapter_id, parent_version_id, version_type, "
                "content, diff_data, word_count, commit_message, is_auto_save, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (version.chapter_id, version.parent_version_id, version.version_type.value,
                 version.content, version.diff_data, version.word_count,
                 version.commit_message, version.is_auto_save,
                 version.created_at.isoformat()),
            )
            version.id = cursor.lastrowid
        return version

    def get_chapter_versions(self, chapter_id: int) -> list[ChapterVersion]:
        """Return a chapter's versions, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_VERSION_COLUMNS} FROM chapter_versions "
                "WHERE chapter_id = ? ORDER BY id DESC",
                (chapter_id,),
            ).fetchall()
            return [self._row_to_version(r) for r in rows]

    def get_chapter_version(self, version_id: int) -> ChapterVersion:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_VERSION_COLUMNS} FROM chapter_versions WHERE id = ?",
                (version_id,),
            ).fetchone()
            if not row:
                raise VersionNotFoundError(version_id)
            return self._row_to_version(row)

    def update_chapter_version(self, version: ChapterVersion):
        """Rewrite a version's chain link and storage (used when pruning)."""
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE chapter_versions SET parent_version_id=?, version_type=?, "
                "content=?, diff_data=? WHERE id=?",
                (version.parent_version_id, version.version_type.value,
                 version.content, version.diff_data, version.id),
            )
            if cursor.rowcount == 0:
                raise VersionNotFoundError(version.id)

    def delete_chapter_versions(self, version_ids: Iterable[int]) -> int:
        ids = list(version_ids)
        if not ids:
            return 0
        with self._connection() as conn:
            cursor = conn.executemany(
                "DELETE FROM chapter_versions WHERE id = ?", [(i,) for i in ids]
            )
            return cursor.rowcount

    def _row_to_version(self, row) -> ChapterVersion:
        return ChapterVersion(
            id=row["id"], chapter_id=row["chapter_id"],
            parent_version_id=row["parent_version_id"],
            version_type=VersionType(row["version_type"]),
            content=row["content"], diff_data=row["diff_data"],
            word_count=row["word_count"] or 0,
            commit_message=row["commit_message"] or "",
            is_auto_save=bool(row["is_auto_save"]),
            created_at=parse_timestamp(row["created_at"], "version created_at"),
        )
