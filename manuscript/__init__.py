"""Manuscript package: chapter tree, revision chain, and chapter operations."""

from manuscript.chapter_tree import ChapterNode, ChapterTree
from manuscript.revision_chain import RevisionChain
from manuscript.chapter_manager import ChapterManager

__all__ = [
    "ChapterNode",
    "ChapterTree",
    "RevisionChain",
    "ChapterManager",
]
