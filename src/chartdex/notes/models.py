"""Note data models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field


class NoteRecord(BaseModel):
    """Free-text title and note attached to one date entry.

    Attributes:
        key: Composite key ``"{asset}-{date_key}"``.
        title: Optional short title.
        note: Note body.
        created_at: When the note was first stored.
        updated_at: When the note was last changed.
    """

    key: str
    title: Optional[str] = None
    note: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NoteDocument(BaseModel):
    """On-disk layout of the note store."""

    notes: Dict[str, NoteRecord] = Field(default_factory=dict)


__all__ = ["NoteRecord", "NoteDocument"]
