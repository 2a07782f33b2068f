"""Document store interface shared by the SQLite database and test fakes."""

from contextlib import AbstractContextManager
from typing import Iterable, Optional, Protocol

from models.chapter import Chapter
from models.enums import ChapterType
from models.novel import Novel
from models.version import ChapterVersion


class DocumentStore(Protocol):
    """Persistence operations required by the chapter tree and revision chain.

    Lookups by id raise the matching ``NotFoundError`` subclass instead of
    returning ``None``. Version listings are newest first.
    """

    def transaction(self) -> AbstractContextManager: ...

    # ---- Novels ----

    def create_novel(self, novel: Novel) -> int: ...

    def get_novel(self, novel_id: int) -> Novel: ...

    def list_novels(self) -> list[Novel]: ...

    def delete_novel(self, novel_id: int) -> None: ...

    # ---- Chapters ----

    def create_chapter(
        self,
        novel_id: int,
        title: str,
        parent_id: Optional[int] = None,
        chapter_type: ChapterType = ChapterType.CHAPTER,
    ) -> Chapter: ...

    def get_chapter(self, chapter_id: int) -> Chapter: ...

    def get_chapters_by_novel(self, novel_id: int) -> list[Chapter]: ...

    def update_chapter_content(self, chapter_id: int, content: str) -> None: ...

    def update_chapter_parent(
        self, chapter_id: int, parent_id: Optional[int], sort_path: str
    ) -> None: ...

    def update_chapter(self, chapter: Chapter) -> None: ...

    def archive_chapter(self, chapter_id: int) -> None: ...

    def delete_chapter(self, chapter_id: int) -> None: ...

    # ---- Versions ----

    def create_chapter_version(self, version: ChapterVersion) -> ChapterVersion: ...

    def get_chapter_versions(self, chapter_id: int) -> list[ChapterVersion]: ...

    def get_chapter_version(self, version_id: int) -> ChapterVersion: ...

    def update_chapter_version(self, version: ChapterVersion) -> None: ...

    def delete_chapter_versions(self, version_ids: Iterable[int]) -> int: ...
