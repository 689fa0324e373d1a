"""Note persistence keyed by asset and date entry."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from .errors import NoteStoreError
from .models import NoteDocument, NoteRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_NOTES_DIRNAME = ".chartdex"
DEFAULT_NOTES_FILENAME = "notes.json"


def note_key(asset: str, date_key: str) -> str:
    """Return the composite key addressing the note of a date entry."""
    return f"{asset}-{date_key}"


class NoteStore(Protocol):
    """Interface the index service needs from a note store."""

    def get(self, key: str) -> Optional[NoteRecord]: ...

    def upsert(self, key: str, title: Optional[str], note: str) -> NoteRecord: ...

    def delete(self, key: str) -> bool: ...


class NoteRepository:
    """Store notes in a single JSON document."""

    def __init__(self, path: Path) -> None:
        """Initialize the repository.

        Args:
            path: JSON file holding the notes; created on first write.
        """
        self._path = path.expanduser()
        self._lock = threading.Lock()

    @classmethod
    def for_library(cls, base_path: Path) -> "NoteRepository":
        """Return a repository stored inside the library's metadata directory."""
        return cls(base_path / DEFAULT_NOTES_DIRNAME / DEFAULT_NOTES_FILENAME)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[NoteRecord]:
        """Return the note stored under ``key``, or ``None``.

        Raises:
            NoteStoreError: If the store cannot be read.
        """
        with self._lock:
            record = self._load().notes.get(key)
        LOGGER.debug("Note lookup for %s: found=%s", key, record is not None)
        return record

    def upsert(self, key: str, title: Optional[str], note: str) -> NoteRecord:
        """Create or replace the note stored under ``key``.

        Returns:
            NoteRecord: Stored record with refreshed ``updated_at``.

        Raises:
            NoteStoreError: If the store cannot be read or written.
        """
        with self._lock:
            document = self._load()
            now = datetime.now(timezone.utc)
            existing = document.notes.get(key)
            record = NoteRecord(
                key=key,
                title=title,
                note=note,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            document.notes[key] = record
            self._write(document)
        LOGGER.info("Note saved for %s", key)
        return record

    def delete(self, key: str) -> bool:
        """Remove the note stored under ``key``.

        Returns:
            bool: True when a note was removed, False when none existed.

        Raises:
            NoteStoreError: If the store cannot be read or written.
        """
        with self._lock:
            document = self._load()
            if document.notes.pop(key, None) is None:
                return False
            self._write(document)
        LOGGER.info("Note deleted for %s", key)
        return True

    def rename(self, old_key: str, new_key: str) -> bool:
        """Move a note to a new key.

        Returns:
            bool: True when a note was moved, False when ``old_key`` had none.

        Raises:
            NoteStoreError: If ``new_key`` already holds a note or the store fails.
        """
        with self._lock:
            document = self._load()
            record = document.notes.get(old_key)
            if record is None:
                return False
            if new_key in document.notes:
                raise NoteStoreError(f"A note already exists for {new_key}.")
            del document.notes[old_key]
            document.notes[new_key] = record.model_copy(
                update={"key": new_key, "updated_at": datetime.now(timezone.utc)}
            )
            self._write(document)
        LOGGER.info("Note moved from %s to %s", old_key, new_key)
        return True

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._load().notes)

    def _load(self) -> NoteDocument:
        if not self._path.exists():
            return NoteDocument()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return NoteDocument.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise NoteStoreError(f"Invalid note store data in {self._path}: {exc}") from exc
        except OSError as exc:
            raise NoteStoreError(f"Cannot read note store {self._path}: {exc}") from exc

    def _write(self, document: NoteDocument) -> None:
        payload = json.dumps(document.model_dump(mode="json"), indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".notes-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            raise NoteStoreError(f"Cannot write note store {self._path}: {exc}") from exc


__all__ = [
    "NoteStore",
    "NoteRepository",
    "NoteRecord",
    "NoteStoreError",
    "note_key",
    "DEFAULT_NOTES_DIRNAME",
]
