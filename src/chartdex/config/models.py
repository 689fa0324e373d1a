"""Configuration models describing Chartdex settings."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chartdex.index.timeframes import Timeframe, coerce_timeframe


class ChartdexBaseModel(BaseModel):
    """Shared configuration for Chartdex Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class LibrarySettings(ChartdexBaseModel):
    """Location and contents of the screenshot library.

    Attributes:
        base_path: Directory holding one subdirectory per asset.
        assets: Ordered asset names; each maps to ``base_path/<asset>``.
        timeframes: Ordered timeframe codes that are indexed and accepted on upload.
    """

    base_path: Optional[str] = None
    assets: List[str] = Field(default_factory=list)
    timeframes: List[Timeframe] = Field(default_factory=lambda: list(Timeframe))

    @field_validator("timeframes", mode="before")
    @classmethod
    def _coerce_timeframes(cls, value: object) -> object:
        if isinstance(value, (list, tuple)):
            return [coerce_timeframe(item) for item in value]
        return value

    @field_validator("assets")
    @classmethod
    def _check_assets(cls, value: List[str]) -> List[str]:
        for name in value:
            if not name or "/" in name or "\\" in name or name in (".", ".."):
                raise ValueError(f"Invalid asset name: {name!r}")
        if len(set(value)) != len(value):
            raise ValueError("Asset names must be unique.")
        return value


class NotesSettings(ChartdexBaseModel):
    """Note store settings.

    Attributes:
        path: JSON file storing notes; defaults to ``<base_path>/.chartdex/notes.json``.
    """

    path: Optional[str] = None


class LoggingSettings(ChartdexBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; enables a rotating file handler.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class WatchSettings(ChartdexBaseModel):
    """Background rescan settings.

    Attributes:
        debounce_seconds: Quiet period after a file event before an asset is rescanned.
    """

    debounce_seconds: float = 1.0


class ChartdexConfig(ChartdexBaseModel):
    """Top-level configuration struct for Chartdex.

    Attributes:
        library: Screenshot library settings.
        notes: Note store settings.
        logging: Logging configuration.
        watch: Background rescan settings.
    """

    library: LibrarySettings = Field(default_factory=LibrarySettings)
    notes: NotesSettings = Field(default_factory=NotesSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)


__all__ = [
    "ChartdexBaseModel",
    "LibrarySettings",
    "NotesSettings",
    "LoggingSettings",
    "WatchSettings",
    "ChartdexConfig",
]
