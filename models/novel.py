"""Novel data model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.enums import NovelStatus


@dataclass
class Novel:
    """Represents a novel and its metadata."""
    id: Optional[int] = None
    title: str = ""
    author: str = ""
    description: str = ""
    status: NovelStatus = NovelStatus.DRAFT
    word_count: int = 0  # sum over non-archived chapters
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
