"""Immutable index snapshot models."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_serializer,
    field_validator,
)

from .timeframes import Timeframe, sort_timeframes


def _read_only(value: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(value))


class SnapshotModel(BaseModel):
    """Base for index models; instances are never mutated after a scan."""

    model_config = ConfigDict(frozen=True)


class ImageAsset(SnapshotModel):
    """A single chart screenshot.

    Attributes:
        asset: Asset (collection) that owns the screenshot.
        timeframe: Canonical chart interval shown in the screenshot.
        filename: Filename inside the asset directory.
        path: Absolute path of the file.
    """

    asset: str
    timeframe: Timeframe
    filename: str
    path: Path


class DateEntry(SnapshotModel):
    """Screenshots of one asset sharing a calendar date and sequence number.

    Attributes:
        asset: Owning asset.
        date: Calendar date as ``YYYY-MM-DD``.
        sequence: Positive run number within the date.
        date_key: ``"{date}-{sequence}"``; unique within the asset.
        images: At most one screenshot per timeframe, as a read-only mapping.
    """

    asset: str
    date: str
    sequence: int = Field(ge=1)
    date_key: str
    images: Dict[Timeframe, ImageAsset] = Field(default_factory=dict)

    @field_validator("images", mode="after")
    @classmethod
    def _freeze_images(cls, value: Dict[Timeframe, ImageAsset]) -> Mapping[Timeframe, ImageAsset]:
        return _read_only(value)

    @field_serializer("images", mode="wrap")
    def _dump_images(
        self, value: Mapping[Timeframe, ImageAsset], handler: SerializerFunctionWrapHandler
    ) -> Any:
        return handler(dict(value))

    def timeframes(self) -> List[Timeframe]:
        return sort_timeframes(self.images)

    def image(self, timeframe: Timeframe) -> Optional[ImageAsset]:
        return self.images.get(timeframe)


class AssetIndex(SnapshotModel):
    """Date entries of one asset ordered by ``(date, sequence)``."""

    asset: str
    entries: Tuple[DateEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[DateEntry]:  # type: ignore[override]
        return iter(self.entries)

    def keys(self) -> List[str]:
        return [entry.date_key for entry in self.entries]

    def get(self, date_key: str) -> Optional[DateEntry]:
        for entry in self.entries:
            if entry.date_key == date_key:
                return entry
        return None


class IndexSnapshot(SnapshotModel):
    """Root index mapping asset names to their date entries.

    Readers share one snapshot, so ``assets`` is a read-only mapping; use
    :meth:`replace` to derive a new snapshot.

    Attributes:
        assets: Asset indexes keyed by asset name, in configured order.
        built_at: When the snapshot was assembled.
    """

    assets: Dict[str, AssetIndex] = Field(default_factory=dict)
    built_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("assets", mode="after")
    @classmethod
    def _freeze_assets(cls, value: Dict[str, AssetIndex]) -> Mapping[str, AssetIndex]:
        return _read_only(value)

    @field_serializer("assets", mode="wrap")
    def _dump_assets(
        self, value: Mapping[str, AssetIndex], handler: SerializerFunctionWrapHandler
    ) -> Any:
        return handler(dict(value))

    def replace(self, asset_index: AssetIndex) -> "IndexSnapshot":
        """Return a new snapshot with ``asset_index`` swapped in; ``self`` is unchanged."""
        assets = dict(self.assets)
        assets[asset_index.asset] = asset_index
        return IndexSnapshot(assets=assets)


class AssetStats(SnapshotModel):
    """Entry and screenshot counts for one asset."""

    total_entries: int = 0
    by_timeframe: Dict[Timeframe, int] = Field(default_factory=dict)


class IndexStats(SnapshotModel):
    """Screenshot counts across the library.

    Attributes:
        total_assets: Number of indexed assets.
        by_timeframe: Screenshot count per timeframe across all assets.
        by_asset: Per-asset counts.
    """

    total_assets: int = 0
    by_timeframe: Dict[Timeframe, int] = Field(default_factory=dict)
    by_asset: Dict[str, AssetStats] = Field(default_factory=dict)


__all__ = [
    "ImageAsset",
    "DateEntry",
    "AssetIndex",
    "IndexSnapshot",
    "AssetStats",
    "IndexStats",
]
