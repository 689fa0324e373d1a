"""Tests for directory scanning and sequence allocation."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from chartdex.index.errors import DirectoryNotFoundError, PathError
from chartdex.index.scanner import (
    build_asset_index,
    build_index,
    compute_stats,
    find_entry_files,
    list_image_files,
    next_sequence,
)
from chartdex.index.timeframes import Timeframe

ALL_TIMEFRAMES = list(Timeframe)


def _touch(directory: Path, *names: str) -> None:
    """Create placeholder screenshot files.

    Args:
        directory: Directory receiving the files; created when missing.
        names: Filenames to create.
    """
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_bytes(b"\x89PNG")


def test_grouping_by_date_and_sequence(tmp_path: Path) -> None:
    _touch(tmp_path, "2024.01.15_1m.png", "2024.01.15_5m.png", "2024.01.15-2_1m.png")

    index = build_asset_index(tmp_path, "BTC", ALL_TIMEFRAMES)

    assert index.keys() == ["2024-01-15-1", "2024-01-15-2"]
    first = index.get("2024-01-15-1")
    assert first is not None
    assert first.timeframes() == [Timeframe.M1, Timeframe.M5]
    assert first.images[Timeframe.M5].filename == "2024.01.15_5m.png"
    assert first.images[Timeframe.M5].path == (tmp_path / "2024.01.15_5m.png").resolve()
    assert first.asset == "BTC"
    second = index.get("2024-01-15-2")
    assert second is not None
    assert list(second.images) == [Timeframe.M1]


def test_entries_sorted_by_date_then_sequence(tmp_path: Path) -> None:
    _touch(
        tmp_path,
        "2024.03.01_1m.png",
        "2024.01.15-10_1m.png",
        "2023.12.31-2_1h.png",
        "2024.01.15-9_1m.png",
        "2023.12.31_1h.png",
    )

    index = build_asset_index(tmp_path, "BTC", ALL_TIMEFRAMES)

    assert index.keys() == [
        "2023-12-31-1",
        "2023-12-31-2",
        "2024-01-15-9",
        "2024-01-15-10",
        "2024-03-01-1",
    ]
    assert [entry.sequence for entry in index] == [1, 2, 9, 10, 1]


def test_rescanning_unchanged_directory_is_deterministic(tmp_path: Path) -> None:
    _touch(tmp_path, "2024.01.15_1m.png", "2024.01.16-3_4h.jpg", "2024.01.14_15min.gif")

    first = build_asset_index(tmp_path, "BTC", ALL_TIMEFRAMES)
    second = build_asset_index(tmp_path, "BTC", ALL_TIMEFRAMES)

    assert first == second


def test_unrecognized_files_are_skipped(tmp_path: Path) -> None:
    _touch(
        tmp_path,
        "2024.01.15_2min.png",
        "notanimage.txt",
        "2024.01.15_1m.txt",
        "2024.01.15_ 1m.png",
        "2024.01.16_4h .png",
    )
    (tmp_path / "2024.01.16_1m.png").mkdir()

    index = build_asset_index(tmp_path, "BTC", ALL_TIMEFRAMES)

    assert len(index) == 0


def test_disabled_timeframes_are_skipped(tmp_path: Path) -> None:
    _touch(tmp_path, "2024.01.15_1m.png", "2024.01.15_4h.png", "2024.01.16_4h.png")

    index = build_asset_index(tmp_path, "BTC", [Timeframe.M1])

    assert index.keys() == ["2024-01-15-1"]
    assert list(index.entries[0].images) == [Timeframe.M1]


def test_slot_collision_keeps_last_file_in_name_order(
    tmp_path: Path, caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(logging.getLogger("chartdex"), "propagate", True)
    caplog.set_level(logging.WARNING, logger="chartdex.index.scanner")
    _touch(tmp_path, "2024.01.15_1m.png", "2024.01.15-1_1min.png")

    index = build_asset_index(tmp_path, "BTC", ALL_TIMEFRAMES)

    assert index.keys() == ["2024-01-15-1"]
    assert index.entries[0].images[Timeframe.M1].filename == "2024.01.15_1m.png"
    assert "replaces" in caplog.text


def test_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(DirectoryNotFoundError):
        build_asset_index(tmp_path / "missing", "BTC", ALL_TIMEFRAMES)


def test_build_index_tolerates_missing_asset_directories(tmp_path: Path) -> None:
    _touch(tmp_path / "BTC", "2024.01.15_1m.png")

    snapshot = build_index(tmp_path, ["BTC", "ETH"], ALL_TIMEFRAMES)

    assert list(snapshot.assets) == ["BTC", "ETH"]
    assert len(snapshot.assets["BTC"]) == 1
    assert len(snapshot.assets["ETH"]) == 0


def test_build_index_requires_base_directory(tmp_path: Path) -> None:
    with pytest.raises(DirectoryNotFoundError):
        build_index(tmp_path / "missing", ["BTC"], ALL_TIMEFRAMES)


def test_next_sequence_returns_max_plus_one(tmp_path: Path) -> None:
    _touch(
        tmp_path,
        "2024.01.15_1m.png",
        "2024.01.15-2_1m.png",
        "2024.01.15-4_5m.png",
        "2024.01.16-7_1m.png",
    )

    assert next_sequence(tmp_path, "2024-01-15") == 5
    assert next_sequence(tmp_path, "2024-01-16") == 8
    assert next_sequence(tmp_path, "2024-01-17") == 1


def test_next_sequence_counts_files_with_unknown_tokens(tmp_path: Path) -> None:
    _touch(tmp_path, "2024.01.15-3_2min.png")

    assert next_sequence(tmp_path, "2024-01-15") == 4


def test_next_sequence_for_missing_directory(tmp_path: Path) -> None:
    assert next_sequence(tmp_path / "missing", "2024-01-15") == 1


def test_find_entry_files_matches_computed_key(tmp_path: Path) -> None:
    _touch(
        tmp_path,
        "2024.01.15_1m.png",
        "2024.01.15-1_4h.png",
        "2024.01.15-2_1m.png",
        "2024.01.15_2min.png",
    )

    files = find_entry_files(tmp_path, "2024-01-15-1")

    assert [path.name for path in files] == ["2024.01.15-1_4h.png", "2024.01.15_1m.png"]


def test_compute_stats_counts_per_asset_and_timeframe(tmp_path: Path) -> None:
    _touch(tmp_path / "BTC", "2024.01.15_1m.png", "2024.01.15_5m.png", "2024.01.16_1m.png")
    _touch(tmp_path / "ETH", "2024.01.15_4h.png")

    stats = compute_stats(build_index(tmp_path, ["BTC", "ETH"], ALL_TIMEFRAMES))

    assert stats.total_assets == 2
    assert stats.by_timeframe == {Timeframe.M1: 2, Timeframe.M5: 1, Timeframe.H4: 1}
    assert stats.by_asset["BTC"].total_entries == 2
    assert stats.by_asset["BTC"].by_timeframe[Timeframe.M1] == 2
    assert stats.by_asset["ETH"].by_timeframe == {Timeframe.H4: 1}


def test_unreadable_asset_directory_leaves_other_assets_intact(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _touch(tmp_path / "BTC", "2024.01.15_1m.png")
    _touch(tmp_path / "ETH", "2024.01.15_1m.png", "2024.01.16_4h.png")
    original_iterdir = Path.iterdir

    def guarded_iterdir(self: Path):
        if self.name == "ETH":
            raise PermissionError(13, "Permission denied", str(self))
        return original_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", guarded_iterdir)

    with pytest.raises(PathError):
        list_image_files(tmp_path / "ETH")

    snapshot = build_index(tmp_path, ["BTC", "ETH"], ALL_TIMEFRAMES)

    assert snapshot.assets["BTC"].keys() == ["2024-01-15-1"]
    assert len(snapshot.assets["ETH"]) == 0
