"""Tests for database CRUD operations."""

import sqlite3
from datetime import timezone

import pytest

from config.exceptions import (
    ChapterNotFoundError,
    NovelNotFoundError,
    StoreError,
    VersionNotFoundError,
)
from models.chapter import Chapter
from models.database import parse_timestamp
from models.enums import ChapterType, NovelStatus, VersionType
from models.novel import Novel
from models.version import ChapterVersion


@pytest.fixture
def novel_id(db):
    return db.create_novel(Novel(title="测试小说", author="作者"))


def _snapshot(chapter_id, content, **kwargs):
    return ChapterVersion(
        chapter_id=chapter_id,
        version_type=VersionType.SNAPSHOT,
        content=content,
        **kwargs,
    )


class TestNovelCRUD:
    def test_create_and_get_novel(self, db):
        novel = Novel(
            title="测试小说",
            author="某人",
            description="一部关于修炼的故事",
            status=NovelStatus.WRITING,
        )
        novel_id = db.create_novel(novel)
        assert novel_id > 0

        retrieved = db.get_novel(novel_id)
        assert retrieved.title == "测试小说"
        assert retrieved.author == "某人"
        assert retrieved.status == NovelStatus.WRITING
        assert retrieved.created_at.tzinfo is not None

    def test_get_novel_not_found_raises(self, db):
        with pytest.raises(NovelNotFoundError):
            db.get_novel(9999)

    def test_update_novel(self, db, novel_id):
        novel = db.get_novel(novel_id)
        novel.title = "更新后的标题"
        novel.status = NovelStatus.COMPLETED
        db.update_novel(novel)

        retrieved = db.get_novel(novel_id)
        assert retrieved.title == "更新后的标题"
        assert retrieved.status == NovelStatus.COMPLETED

    def test_list_novels_returns_all(self, db):
        db.create_novel(Novel(title="小说一"))
        db.create_novel(Novel(title="小说二"))
        assert [n.title for n in db.list_novels()] == ["小说一", "小说二"]

    def test_delete_novel_cascades(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        version = db.create_chapter_version(_snapshot(chapter.id, "正文"))
        db.delete_novel(novel_id)
        with pytest.raises(ChapterNotFoundError):
            db.get_chapter(chapter.id)
        with pytest.raises(VersionNotFoundError):
            db.get_chapter_version(version.id)


class TestChapterCRUD:
    def test_create_and_get_chapter(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章", chapter_type=ChapterType.SCENE)
        assert chapter.id > 0

        retrieved = db.get_chapter(chapter.id)
        assert retrieved.title == "第一章"
        assert retrieved.content == ""
        assert retrieved.parent_id is None
        assert retrieved.chapter_type == ChapterType.SCENE
        assert retrieved.sort_path == chapter.sort_path
        assert retrieved.is_archived is False

    def test_create_chapter_unknown_novel_raises(self, db):
        with pytest.raises(NovelNotFoundError):
            db.create_chapter(9999, "孤章")

    def test_get_chapter_not_found_raises(self, db):
        with pytest.raises(ChapterNotFoundError):
            db.get_chapter(9999)

    def test_new_chapters_append_after_siblings(self, db, novel_id):
        first = db.create_chapter(novel_id, "一")
        second = db.create_chapter(novel_id, "二")
        child = db.create_chapter(novel_id, "子", parent_id=first.id)
        assert first.sort_path == "000001"
        assert second.sort_path == "000002"
        assert child.sort_path == "000001"

    def test_new_chapter_follows_highest_sibling_key(self, db, novel_id):
        first = db.create_chapter(novel_id, "一")
        db.update_chapter_parent(first.id, None, "000007_5")
        second = db.create_chapter(novel_id, "二")
        assert second.sort_path == "000008"
        assert db.get_chapter(first.id).sort_path < second.sort_path

    def test_get_chapters_by_novel_ordered_and_active(self, db, novel_id):
        a = db.create_chapter(novel_id, "A")
        b = db.create_chapter(novel_id, "B")
        c = db.create_chapter(novel_id, "C")
        db.archive_chapter(b.id)
        assert [ch.id for ch in db.get_chapters_by_novel(novel_id)] == [a.id, c.id]

    def test_update_chapter_content(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        db.update_chapter_content(chapter.id, "夜 色")
        retrieved = db.get_chapter(chapter.id)
        assert retrieved.content == "夜 色"
        assert retrieved.word_count == 2

    def test_update_chapter(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        chapter.title = "改名"
        chapter.content = "新的 内容"
        chapter.chapter_type = ChapterType.VOLUME
        db.update_chapter(chapter)

        retrieved = db.get_chapter(chapter.id)
        assert retrieved.title == "改名"
        assert retrieved.word_count == 4
        assert retrieved.chapter_type == ChapterType.VOLUME

    def test_update_missing_chapter_raises(self, db):
        with pytest.raises(ChapterNotFoundError):
            db.update_chapter_content(9999, "x")
        with pytest.raises(ChapterNotFoundError):
            db.update_chapter(Chapter(id=9999, title="x"))
        with pytest.raises(ChapterNotFoundError):
            db.update_chapter_parent(9999, None, "000000_0")

    def test_delete_chapter_orphans_children(self, db, novel_id):
        parent = db.create_chapter(novel_id, "父")
        child = db.create_chapter(novel_id, "子", parent_id=parent.id)
        db.delete_chapter(parent.id)
        assert db.get_chapter(child.id).parent_id is None

    def test_delete_missing_chapter_raises(self, db):
        with pytest.raises(ChapterNotFoundError):
            db.delete_chapter(9999)


class TestNovelWordCount:
    def test_sum_of_active_chapters(self, db, novel_id):
        a = db.create_chapter(novel_id, "A")
        b = db.create_chapter(novel_id, "B")
        db.update_chapter_content(a.id, "一二三")
        db.update_chapter_content(b.id, "四五")
        assert db.get_novel(novel_id).word_count == 5

    def test_archiving_subtracts(self, db, novel_id):
        a = db.create_chapter(novel_id, "A")
        db.update_chapter_content(a.id, "一二三")
        db.archive_chapter(a.id)
        assert db.get_novel(novel_id).word_count == 0

    def test_deleting_subtracts(self, db, novel_id):
        a = db.create_chapter(novel_id, "A")
        b = db.create_chapter(novel_id, "B")
        db.update_chapter_content(a.id, "一二三")
        db.update_chapter_content(b.id, "四五")
        db.delete_chapter(a.id)
        assert db.get_novel(novel_id).word_count == 2


class TestChapterVersionCRUD:
    def test_create_and_get_version(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        version = db.create_chapter_version(
            _snapshot(chapter.id, "正文", commit_message="初稿", is_auto_save=True)
        )
        retrieved = db.get_chapter_version(version.id)
        assert retrieved.content == "正文"
        assert retrieved.diff_data is None
        assert retrieved.commit_message == "初稿"
        assert retrieved.is_auto_save is True
        assert retrieved.is_snapshot

    def test_versions_newest_first(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        ids = [db.create_chapter_version(_snapshot(chapter.id, str(i))).id for i in range(3)]
        assert [v.id for v in db.get_chapter_versions(chapter.id)] == list(reversed(ids))

    def test_get_version_not_found_raises(self, db):
        with pytest.raises(VersionNotFoundError):
            db.get_chapter_version(9999)

    def test_update_version(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        first = db.create_chapter_version(_snapshot(chapter.id, "a"))
        second = db.create_chapter_version(ChapterVersion(
            chapter_id=chapter.id, parent_version_id=first.id,
            version_type=VersionType.DIFF, diff_data='[["=",1],["+","b"]]',
        ))
        second.parent_version_id = None
        second.version_type = VersionType.SNAPSHOT
        second.content = "ab"
        second.diff_data = None
        db.update_chapter_version(second)

        retrieved = db.get_chapter_version(second.id)
        assert retrieved.parent_version_id is None
        assert retrieved.is_snapshot
        assert retrieved.content == "ab"

    def test_update_missing_version_raises(self, db):
        with pytest.raises(VersionNotFoundError):
            db.update_chapter_version(ChapterVersion(id=9999))

    def test_delete_versions_counts_rows(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        first = db.create_chapter_version(_snapshot(chapter.id, "a"))
        second = db.create_chapter_version(_snapshot(chapter.id, "b"))
        assert db.delete_chapter_versions([first.id, second.id, 9999]) == 2
        assert db.delete_chapter_versions([]) == 0
        assert db.get_chapter_versions(chapter.id) == []

    def test_deleting_parent_clears_link(self, db, novel_id):
        chapter = db.create_chapter(novel_id, "第一章")
        first = db.create_chapter_version(_snapshot(chapter.id, "a"))
        second = db.create_chapter_version(_snapshot(chapter.id, "b", parent_version_id=first.id))
        db.delete_chapter_versions([first.id])
        assert db.get_chapter_version(second.id).parent_version_id is None


class TestTransactions:
    def test_commit(self, db, novel_id):
        with db.transaction():
            chapter = db.create_chapter(novel_id, "第一章")
            db.update_chapter_content(chapter.id, "内容")
        assert db.get_chapter(chapter.id).content == "内容"

    def test_rollback_on_error(self, db, novel_id):
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.create_chapter(novel_id, "会消失的章节")
                raise RuntimeError("boom")
        assert db.get_chapters_by_novel(novel_id) == []

    def test_nested_transactions_join_outer(self, db, novel_id):
        with pytest.raises(RuntimeError):
            with db.transaction():
                with db.transaction():
                    db.create_chapter(novel_id, "内层")
                raise RuntimeError("boom")
        assert db.get_chapters_by_novel(novel_id) == []

    def test_sqlite_errors_wrapped(self, db, novel_id):
        with pytest.raises(StoreError):
            with db.transaction() as store:
                store.create_chapter(novel_id, "第一章", parent_id=9999)

    def test_sqlite_error_outside_transaction_wrapped(self, db):
        with pytest.raises(StoreError) as exc_info:
            db.create_chapter_version(_snapshot(9999, "孤儿版本"))
        assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)


class TestTimestamps:
    def test_naive_timestamp_treated_as_utc(self):
        parsed = parse_timestamp("2024-01-02T03:04:05")
        assert parsed.tzinfo == timezone.utc
        assert parsed.hour == 3

    def test_unparseable_timestamp_falls_back(self, caplog):
        parsed = parse_timestamp("not a date", "created_at")
        assert parsed.tzinfo is not None
        assert "Unparseable created_at" in caplog.text


class TestDatabaseBackup:
    def test_backup_creates_file(self, db, tmp_path):
        backup_path = tmp_path / "backups" / "db_backup.sqlite"
        result = db.backup_database(backup_path)
        assert result.exists()
        assert result == backup_path

    def test_backup_is_valid_sqlite(self, db, tmp_path, novel_id):
        backup_path = tmp_path / "db_backup.sqlite"
        db.backup_database(backup_path)

        # WAL mode may not have checkpointed tables into the main file yet,
        # but the file itself must be a valid SQLite database file
        with open(str(backup_path), "rb") as f:
            header = f.read(16)
        assert header.startswith(b"SQLite format 3")
