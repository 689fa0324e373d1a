"""Screenshot index engine: filename grammar, scanning, and snapshot models."""

from .errors import (
    AssetNotFoundError,
    ChartIndexError,
    DirectoryNotFoundError,
    EntryNotFoundError,
    InvalidRequestError,
    NotFoundError,
    PartialRenameError,
    PathError,
    RenameCollisionError,
    UploadIOError,
)
from .grammar import ParsedName, format_filename, parse
from .models import AssetIndex, DateEntry, ImageAsset, IndexSnapshot, IndexStats
from .scanner import build_asset_index, build_index, compute_stats, next_sequence
from .timeframes import Timeframe, normalize_timeframe

__all__ = [
    "AssetIndex",
    "AssetNotFoundError",
    "ChartIndexError",
    "DateEntry",
    "DirectoryNotFoundError",
    "EntryNotFoundError",
    "ImageAsset",
    "IndexSnapshot",
    "IndexStats",
    "InvalidRequestError",
    "NotFoundError",
    "ParsedName",
    "PartialRenameError",
    "PathError",
    "RenameCollisionError",
    "Timeframe",
    "UploadIOError",
    "build_asset_index",
    "build_index",
    "compute_stats",
    "format_filename",
    "next_sequence",
    "normalize_timeframe",
    "parse",
]
