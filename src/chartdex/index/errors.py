"""Index engine errors."""

from __future__ import annotations

from pathlib import Path


class ChartIndexError(Exception):
    """Base exception for index engine operations."""


class DirectoryNotFoundError(ChartIndexError):
    """Raised when a library or asset directory does not exist."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Directory not found: {path}")
        self.path = path


class PathError(ChartIndexError):
    """Raised when the filesystem refuses a list, read, write, or delete."""


class NotFoundError(ChartIndexError):
    """Raised when the requested asset, entry, or image does not exist."""


class AssetNotFoundError(NotFoundError):
    """Raised for asset names that are not part of the configured library."""

    def __init__(self, asset: str) -> None:
        super().__init__(f"Asset {asset!r} is not configured.")
        self.asset = asset


class EntryNotFoundError(NotFoundError):
    """Raised when no screenshot belongs to the requested date key."""

    def __init__(self, asset: str, date_key: str) -> None:
        super().__init__(f"No screenshots found for {asset} {date_key}.")
        self.asset = asset
        self.date_key = date_key


class RenameCollisionError(ChartIndexError):
    """Raised when a rename target date key is already occupied."""

    def __init__(self, asset: str, date_key: str) -> None:
        super().__init__(f"Date entry {date_key} already exists for {asset}.")
        self.asset = asset
        self.date_key = date_key


class UploadIOError(ChartIndexError):
    """Raised when an upload batch could not be written completely.

    Files written before the failure stay on disk and are indexed as their own entry.
    """

    def __init__(self, message: str, *, written: int, total: int) -> None:
        super().__init__(message)
        self.written = written
        self.total = total


class PartialRenameError(ChartIndexError):
    """Raised when a rename batch stopped midway; renamed files are not reverted."""

    def __init__(self, message: str, *, renamed: int, total: int) -> None:
        super().__init__(message)
        self.renamed = renamed
        self.total = total


class InvalidRequestError(ChartIndexError, ValueError):
    """Raised for malformed dates, date keys, timeframes, or empty uploads."""


__all__ = [
    "ChartIndexError",
    "DirectoryNotFoundError",
    "PathError",
    "NotFoundError",
    "AssetNotFoundError",
    "EntryNotFoundError",
    "RenameCollisionError",
    "UploadIOError",
    "PartialRenameError",
    "InvalidRequestError",
]
