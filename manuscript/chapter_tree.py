"""In-memory hierarchical view over a novel's flat chapter list.

The tree is an arena keyed by chapter id: nodes hold a copy of their
chapter, the ids of their children and their depth. It is rebuilt from the
store whenever needed and never persisted.
"""

import logging
from copy import copy
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from config.exceptions import (
    ChapterNotFoundError,
    CycleError,
    IntegrityError,
    SortPathOutOfRangeError,
)
from models.chapter import Chapter, sort_key_between

logger = logging.getLogger(__name__)


@dataclass
class ChapterNode:
    chapter: Chapter
    children: list[int] = field(default_factory=list)
    depth: int = 0

    @property
    def id(self) -> int:
        return self.chapter.id


@dataclass
class ChapterTree:
    nodes: dict[int, ChapterNode] = field(default_factory=dict)
    root_nodes: list[int] = field(default_factory=list)

    @classmethod
    def build(cls, chapters: Iterable[Chapter]) -> "ChapterTree":
        """Build a tree from chapters of one novel, in any order.

        Archived chapters are left out. A chapter whose parent is not in
        the set becomes an extra root instead of an error, and so does the
        lowest-id chapter of a stored parent loop.
        """
        tree = cls()
        for chapter in chapters:
            if chapter.is_archived:
                continue
            tree.nodes[chapter.id] = ChapterNode(chapter=copy(chapter))

        for node_id in sorted(tree.nodes):
            parent_id = tree.nodes[node_id].chapter.parent_id
            if parent_id is not None and parent_id in tree.nodes and parent_id != node_id:
                tree.nodes[parent_id].children.append(node_id)
            else:
                if parent_id is not None:
                    logger.debug("Chapter %d has missing parent %s, treated as root", node_id, parent_id)
                tree.root_nodes.append(node_id)

        tree.root_nodes.sort(key=tree._order_key)
        for node in tree.nodes.values():
            node.children.sort(key=tree._order_key)

        reached: set[int] = set()
        for root_id in tree.root_nodes:
            reached |= tree._assign_depths(root_id)
        if len(reached) != len(tree.nodes):
            # Parent links that loop never reach a root; lift them out as roots
            lifted = []
            for node_id in sorted(tree.nodes):
                if node_id in reached:
                    continue
                parent_id = tree.nodes[node_id].chapter.parent_id
                tree.nodes[parent_id].children.remove(node_id)
                tree.root_nodes.append(node_id)
                reached |= tree._assign_depths(node_id)
                lifted.append(node_id)
            tree.root_nodes.sort(key=tree._order_key)
            logger.warning(
                "Chapters %s sit in a parent loop (corrupt parent links), attached as roots",
                lifted,
            )
        logger.info("Built chapter tree: %d nodes, %d roots", len(tree.nodes), len(tree.root_nodes))
        return tree

    def _order_key(self, node_id: int) -> tuple[str, int]:
        return (self.nodes[node_id].chapter.sort_path, node_id)

    def _assign_depths(self, top_id: int) -> set[int]:
        """Assign depths below ``top_id``, which sits at depth 0; returns the ids reached."""
        reached = set()
        stack = [(top_id, 0)]
        while stack:
            node_id, depth = stack.pop()
            node = self.nodes[node_id]
            node.depth = depth
            reached.add(node_id)
            for child_id in reversed(node.children):
                stack.append((child_id, depth + 1))
        return reached

    # ---- Queries ----

    def __contains__(self, chapter_id: int) -> bool:
        return chapter_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, chapter_id: int) -> ChapterNode:
        try:
            return self.nodes[chapter_id]
        except KeyError:
            raise ChapterNotFoundError(chapter_id) from None

    def depth(self, chapter_id: int) -> int:
        return self.node(chapter_id).depth

    def parent_of(self, chapter_id: int) -> Optional[int]:
        if chapter_id in self.root_nodes:
            return None
        parent_id = self.node(chapter_id).chapter.parent_id
        return parent_id if parent_id in self.nodes else None

    def siblings(self, parent_id: Optional[int]) -> list[int]:
        """Child ids of ``parent_id``, or the root list when it is None."""
        if parent_id is None:
            return list(self.root_nodes)
        return list(self.node(parent_id).children)

    def ancestors(self, chapter_id: int) -> list[int]:
        """Ids from the direct parent up to the root."""
        result = []
        current = self.parent_of(chapter_id)
        while current is not None and len(result) < len(self.nodes):
            result.append(current)
            current = self.parent_of(current)
        return result

    def descendants(self, chapter_id: int) -> list[int]:
        """Ids below ``chapter_id`` in pre-order."""
        result = []
        stack = list(reversed(self.node(chapter_id).children))
        while stack:
            node_id = stack.pop()
            result.append(node_id)
            stack.extend(reversed(self.nodes[node_id].children))
        return result

    # ---- Moves ----

    def would_create_cycle(self, moving_id: int, new_parent_id: int) -> bool:
        """True if placing ``moving_id`` under ``new_parent_id`` forms a cycle.

        Walks upward from the new parent; meeting the moving chapter
        (or starting on it) means the new parent is the chapter itself or
        one of its descendants.
        """
        current = new_parent_id
        steps = 0
        while current is not None:
            if current == moving_id:
                return True
            node = self.nodes.get(current)
            if node is None:
                return False
            current = node.chapter.parent_id
            steps += 1
            if steps > len(self.nodes):
                # Stored links already loop; refuse to add to the mess
                return True
        return False

    def validate_move(self, moving_id: int, new_parent_id: Optional[int]) -> None:
        """Raise CycleError if the move must be rejected."""
        if new_parent_id is not None and self.would_create_cycle(moving_id, new_parent_id):
            logger.warning(
                "Move rejected: chapter %d cannot be placed under %d", moving_id, new_parent_id
            )
            raise CycleError(moving_id, new_parent_id)

    def next_sort_path(
        self, parent_id: Optional[int], position: int, moving_id: Optional[int] = None
    ) -> str:
        """Ordering key for inserting at ``position`` among ``parent_id``'s children.

        The key falls strictly between the siblings now at ``position - 1``
        and ``position``. ``moving_id`` is left out of the siblings when a
        chapter is reordered under its current parent.
        """
        others = [
            self.nodes[sibling].chapter.sort_path
            for sibling in self.siblings(parent_id)
            if sibling != moving_id
        ]
        if position < 0 or position > len(others):
            raise SortPathOutOfRangeError(position, len(others))
        lower = others[position - 1] if position > 0 else None
        upper = others[position] if position < len(others) else None
        try:
            return sort_key_between(lower, upper)
        except ValueError as e:
            raise IntegrityError(
                "Sibling sort paths leave no room for an insert",
                {"parent_id": parent_id, "position": position, "lower": lower, "upper": upper},
            ) from e

    # ---- Traversal ----

    def walk(self) -> Iterator[ChapterNode]:
        """Yield nodes in pre-order, roots and children in stored order."""
        stack = list(reversed(self.root_nodes))
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def flatten(self) -> list[Chapter]:
        chapters = [node.chapter for node in self.walk()]
        logger.debug("Flattened chapter tree into %d chapters", len(chapters))
        return chapters
