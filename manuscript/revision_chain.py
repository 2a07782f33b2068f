"""Per-chapter revision history stored as a chain of snapshots and diffs.

Every save appends a version whose parent is the chapter's previous
version. Every ``snapshot_interval``-th save stores the full text; the
others store only a patch against their parent, so reading an old version
means walking back to the nearest snapshot and replaying patches forward.
"""

import asyncio
import logging
import threading
from typing import Optional

from config.exceptions import (
    ChainIntegrityError,
    PatchApplyError,
    ReconstructionCancelledError,
    ValidationError,
    VersionNotFoundError,
)
from config.settings import Settings, get_settings
from models.enums import VersionType
from models.store import DocumentStore
from models.version import (
    ChapterVersion,
    VersionComparison,
    VersionPatterns,
    VersionTimelineEntry,
)
from tools.diff_engine import TextDiffEngine
from tools.text_utils import count_total_chars

logger = logging.getLogger(__name__)


class RevisionChain:
    """Creates, reconstructs, compares and prunes chapter versions."""

    def __init__(
        self,
        store: DocumentStore,
        diff_engine: Optional[TextDiffEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.diff_engine = diff_engine or TextDiffEngine.from_settings(self.settings)

    # ---- Saving ----

    def create_version(
        self,
        chapter_id: int,
        content: str,
        commit_message: Optional[str] = None,
        is_auto_save: bool = False,
    ) -> ChapterVersion:
        """Append a version holding ``content`` to the chapter's chain."""
        content = content or ""
        with self.store.transaction():
            self.store.get_chapter(chapter_id)
            previous = self.store.get_chapter_versions(chapter_id)
            parent = previous[0] if previous else None

            if len(previous) % self.settings.snapshot_interval == 0:
                version_type = VersionType.SNAPSHOT
                stored_content, diff_data = content, None
            else:
                version_type = VersionType.DIFF
                parent_content = self.restore(parent.id)
                stored_content = None
                diff_data = self.diff_engine.make_patch(parent_content, content)

            version = self.store.create_chapter_version(ChapterVersion(
                chapter_id=chapter_id,
                parent_version_id=parent.id if parent else None,
                version_type=version_type,
                content=stored_content,
                diff_data=diff_data,
                word_count=count_total_chars(content),
                commit_message=commit_message or "",
                is_auto_save=is_auto_save,
            ))

        logger.info(
            "Chapter %d: saved version %d (%s, %d chars, auto=%s)",
            chapter_id, version.id, version_type.value, version.word_count, is_auto_save,
        )
        return version

    def latest_version(self, chapter_id: int) -> Optional[ChapterVersion]:
        versions = self.store.get_chapter_versions(chapter_id)
        return versions[0] if versions else None

    # ---- Reconstruction ----

    def _collect_chain(
        self, version_id: int, cancel_event: Optional[threading.Event] = None
    ) -> list[ChapterVersion]:
        """Versions from the nearest snapshot up to ``version_id``, oldest first."""
        target = self.store.get_chapter_version(version_id)
        chain = [target]
        seen = {target.id}
        current = target
        while not current.is_snapshot:
            if cancel_event is not None and cancel_event.is_set():
                raise ReconstructionCancelledError(version_id)
            if current.diff_data is None:
                raise ChainIntegrityError(current.id, "diff version has no patch payload")
            if current.parent_version_id is None:
                raise ChainIntegrityError(current.id, "chain ends without a snapshot")
            try:
                parent = self.store.get_chapter_version(current.parent_version_id)
            except VersionNotFoundError as e:
                raise ChainIntegrityError(
                    current.id, f"dangling parent {current.parent_version_id}"
                ) from e
            if parent.id in seen:
                raise ChainIntegrityError(current.id, "chain loops back on itself")
            if parent.chapter_id != target.chapter_id:
                raise ChainIntegrityError(current.id, "parent belongs to another chapter")
            seen.add(parent.id)
            chain.append(parent)
            current = parent

        if current.content is None:
            raise ChainIntegrityError(current.id, "snapshot has no content")
        chain.reverse()
        return chain

    def restore(self, version_id: int, cancel_event: Optional[threading.Event] = None) -> str:
        """Reconstruct the full text of a version.

        Args:
            version_id: Version to rebuild.
            cancel_event: Checked between chain steps; when set the rebuild
                stops with ReconstructionCancelledError.

        Raises:
            VersionNotFoundError: ``version_id`` does not exist.
            ChainIntegrityError: The chain back to a snapshot is broken.
        """
        chain = self._collect_chain(version_id, cancel_event)
        content = chain[0].content
        for version in chain[1:]:
            if cancel_event is not None and cancel_event.is_set():
                raise ReconstructionCancelledError(version_id)
            try:
                content = self.diff_engine.apply_patch(content, version.diff_data)
            except PatchApplyError as e:
                logger.error("Patch of version %d does not apply: %s", version.id, e)
                raise ChainIntegrityError(version.id, f"patch does not apply: {e.message}") from e
        logger.debug("Restored version %d through %d chain steps", version_id, len(chain))
        return content

    async def restore_async(self, version_id: int, timeout: Optional[float] = None) -> str:
        """Run ``restore`` in a worker thread, abandoning it after ``timeout`` seconds."""
        if timeout is None:
            timeout = self.settings.reconstruction_timeout
        cancel_event = threading.Event()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.restore, version_id, cancel_event),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            cancel_event.set()
            logger.warning("Restore of version %d timed out after %.1fs", version_id, timeout)
            raise ReconstructionCancelledError(
                version_id, f"Reconstruction of version {version_id} timed out after {timeout}s"
            ) from None
        except asyncio.CancelledError:
            cancel_event.set()
            raise

    # ---- Comparison & history ----

    def compare(self, version_id1: int, version_id2: int) -> VersionComparison:
        version1 = self.store.get_chapter_version(version_id1)
        version2 = self.store.get_chapter_version(version_id2)
        text1 = self.restore(version_id1)
        text2 = self.restore(version_id2)

        engine = self.diff_engine
        return VersionComparison(
            version1=version1,
            version2=version2,
            diff_text=engine.diff(text1, text2),
            statistics=engine.change_statistics(text1, text2),
            similar_chunks=engine.similar_chunks(
                text1, text2, self.settings.similar_chunk_min_length
            ),
            old_text=text1,
            new_text=text2,
        )

    def timeline(self, chapter_id: int) -> list[VersionTimelineEntry]:
        """Version summaries without content, newest first."""
        return [
            VersionTimelineEntry(
                version_id=v.id,
                created_at=v.created_at,
                commit_message=v.commit_message,
                version_type=v.version_type,
                word_count=v.word_count,
                is_auto_save=v.is_auto_save,
            )
            for v in self.store.get_chapter_versions(chapter_id)
        ]

    def version_patterns(self, chapter_id: int) -> VersionPatterns:
        timeline = self.timeline(chapter_id)
        if not timeline:
            return VersionPatterns()

        auto_saves = sum(1 for entry in timeline if entry.is_auto_save)
        gaps = [
            (newer.created_at - older.created_at).total_seconds()
            for newer, older in zip(timeline, timeline[1:])
            if newer.created_at and older.created_at
        ]
        return VersionPatterns(
            total_versions=len(timeline),
            auto_save_count=auto_saves,
            manual_save_count=len(timeline) - auto_saves,
            average_seconds_between_saves=int(sum(gaps) / len(gaps)) if gaps else 0,
            first_version_at=timeline[-1].created_at,
            last_version_at=timeline[0].created_at,
        )

    # ---- Retention ----

    def _contents_by_id(self, versions_oldest_first: list[ChapterVersion]) -> dict[int, str]:
        """Rebuild every version's text in a single forward pass."""
        contents: dict[int, str] = {}
        for version in versions_oldest_first:
            if version.is_snapshot:
                if version.content is None:
                    raise ChainIntegrityError(version.id, "snapshot has no content")
                contents[version.id] = version.content
                continue
            if version.parent_version_id not in contents:
                raise ChainIntegrityError(
                    version.id, f"dangling parent {version.parent_version_id}"
                )
            if version.diff_data is None:
                raise ChainIntegrityError(version.id, "diff version has no patch payload")
            try:
                contents[version.id] = self.diff_engine.apply_patch(
                    contents[version.parent_version_id], version.diff_data
                )
            except PatchApplyError as e:
                raise ChainIntegrityError(version.id, f"patch does not apply: {e.message}") from e
        return contents

    def prune_auto_saves(self, chapter_id: int, keep_count: int) -> int:
        """Delete auto-saves older than the ``keep_count`` most recent ones.

        Surviving versions whose parent is deleted are re-linked to the
        nearest surviving predecessor with a freshly computed patch; a
        surviving diff with no predecessor left is promoted to a snapshot.

        Returns:
            Number of versions deleted.
        """
        if keep_count < 0:
            raise ValidationError("keep_count must be non-negative", {"keep_count": keep_count})

        with self.store.transaction():
            versions = self.store.get_chapter_versions(chapter_id)
            auto_saves = [v for v in versions if v.is_auto_save]
            doomed = {v.id for v in auto_saves[keep_count:]}
            if not doomed:
                return 0

            chronological = list(reversed(versions))
            contents = self._contents_by_id(chronological)

            promoted = relinked = 0
            previous: Optional[ChapterVersion] = None
            for version in chronological:
                if version.id in doomed:
                    continue
                new_parent_id = previous.id if previous else None
                if version.parent_version_id != new_parent_id:
                    version.parent_version_id = new_parent_id
                    if previous is None and not version.is_snapshot:
                        version.version_type = VersionType.SNAPSHOT
                        version.content = contents[version.id]
                        version.diff_data = None
                        promoted += 1
                    elif not version.is_snapshot:
                        version.diff_data = self.diff_engine.make_patch(
                            contents[previous.id], contents[version.id]
                        )
                        relinked += 1
                    self.store.update_chapter_version(version)
                previous = version

            deleted = self.store.delete_chapter_versions(sorted(doomed))

        logger.info(
            "Chapter %d: pruned %d auto-saves (kept %d, promoted %d, relinked %d)",
            chapter_id, deleted, keep_count, promoted, relinked,
        )
        return deleted
