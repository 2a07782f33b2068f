"""Chapter operations that combine the document store, tree and revision chain."""

import logging
from typing import Optional

from config.exceptions import InvalidTitleError, ValidationError
from config.settings import Settings, get_settings
from manuscript.chapter_tree import ChapterTree
from manuscript.revision_chain import RevisionChain
from models.chapter import Chapter
from models.enums import ChapterType
from models.store import DocumentStore
from models.version import ChapterVersion

logger = logging.getLogger(__name__)


def _clean_title(title: str) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise InvalidTitleError("Chapter title must not be empty")
    return cleaned


class ChapterManager:
    """Creates, moves, edits and removes chapters of a novel."""

    def __init__(
        self,
        store: DocumentStore,
        revisions: Optional[RevisionChain] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.revisions = revisions or RevisionChain(store, settings=self.settings)

    def list_tree(self, novel_id: int) -> ChapterTree:
        self.store.get_novel(novel_id)
        return ChapterTree.build(self.store.get_chapters_by_novel(novel_id))

    def create_chapter(
        self,
        novel_id: int,
        title: str,
        parent_id: Optional[int] = None,
        chapter_type: ChapterType = ChapterType.CHAPTER,
    ) -> Chapter:
        title = _clean_title(title)
        logger.info(
            "Creating chapter: novel_id=%d, title=%r, parent_id=%s", novel_id, title, parent_id
        )
        self.store.get_novel(novel_id)
        if parent_id is not None:
            parent = self.store.get_chapter(parent_id)
            if parent.novel_id != novel_id:
                raise ValidationError(
                    "Parent chapter belongs to another novel",
                    {"parent_id": parent_id, "novel_id": novel_id},
                )
        chapter = self.store.create_chapter(novel_id, title, parent_id, chapter_type)
        logger.info("Chapter created: id=%d, title=%r", chapter.id, chapter.title)
        return chapter

    def move_chapter(
        self, chapter_id: int, new_parent_id: Optional[int], position: int
    ) -> Chapter:
        """Re-parent a chapter and place it at ``position`` among its new siblings.

        Raises:
            CycleError: The new parent is the chapter itself or a descendant.
            SortPathOutOfRangeError: ``position`` exceeds the sibling count.
        """
        logger.info(
            "Moving chapter: id=%d, new_parent_id=%s, position=%d",
            chapter_id, new_parent_id, position,
        )
        with self.store.transaction():
            chapter = self.store.get_chapter(chapter_id)
            if new_parent_id is not None:
                parent = self.store.get_chapter(new_parent_id)
                if parent.novel_id != chapter.novel_id:
                    raise ValidationError(
                        "Cannot move a chapter into another novel",
                        {"chapter_id": chapter_id, "new_parent_id": new_parent_id},
                    )
            tree = ChapterTree.build(self.store.get_chapters_by_novel(chapter.novel_id))
            tree.validate_move(chapter_id, new_parent_id)
            sort_path = tree.next_sort_path(new_parent_id, position, chapter_id)
            self.store.update_chapter_parent(chapter_id, new_parent_id, sort_path)

        chapter.parent_id = new_parent_id
        chapter.sort_path = sort_path
        logger.info("Moved chapter %d under %s with sort path %s", chapter_id, new_parent_id, sort_path)
        return chapter

    def rename_chapter(self, chapter_id: int, title: str) -> Chapter:
        chapter = self.store.get_chapter(chapter_id)
        chapter.title = _clean_title(title)
        self.store.update_chapter(chapter)
        return chapter

    def save_content(
        self,
        chapter_id: int,
        content: str,
        commit_message: Optional[str] = None,
        is_auto_save: bool = False,
    ) -> ChapterVersion:
        """Write new chapter text and record it as a version in one step."""
        with self.store.transaction():
            self.store.update_chapter_content(chapter_id, content)
            version = self.revisions.create_version(
                chapter_id, content, commit_message, is_auto_save
            )
            if is_auto_save:
                self.revisions.prune_auto_saves(chapter_id, self.settings.auto_save_keep_count)
        return version

    def restore_chapter(self, chapter_id: int, version_id: int) -> ChapterVersion:
        """Make an old version the chapter's current text, recorded as a new save."""
        version = self.store.get_chapter_version(version_id)
        if version.chapter_id != chapter_id:
            raise ValidationError(
                "Version belongs to another chapter",
                {"chapter_id": chapter_id, "version_id": version_id},
            )
        content = self.revisions.restore(version_id)
        return self.save_content(
            chapter_id, content, commit_message=f"Restored version {version_id}"
        )

    def archive_chapter(self, chapter_id: int):
        self.store.archive_chapter(chapter_id)
        logger.info("Chapter %d archived", chapter_id)

    def delete_chapter(self, chapter_id: int):
        self.store.delete_chapter(chapter_id)
