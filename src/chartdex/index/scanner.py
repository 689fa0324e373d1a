"""Directory scanning: turn asset directories into ordered date entries."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, Sequence

from .errors import DirectoryNotFoundError, PathError
from .grammar import has_image_extension, make_date_key, match_filename, parse, to_filename_date
from .models import AssetIndex, AssetStats, DateEntry, ImageAsset, IndexSnapshot, IndexStats
from .timeframes import Timeframe

LOGGER = logging.getLogger(__name__)


def list_image_files(directory: Path) -> list[Path]:
    """Return image files directly inside ``directory`` sorted by filename.

    Raises:
        DirectoryNotFoundError: If ``directory`` is missing or not a directory.
        PathError: If the directory cannot be listed.
    """
    if not directory.is_dir():
        raise DirectoryNotFoundError(directory)
    try:
        children = list(directory.iterdir())
    except FileNotFoundError as exc:
        raise DirectoryNotFoundError(directory) from exc
    except OSError as exc:
        raise PathError(f"Cannot list {directory}: {exc}") from exc

    files = [path for path in children if has_image_extension(path.name) and path.is_file()]
    return sorted(files, key=lambda path: path.name)


def build_asset_index(
    asset_dir: Path,
    asset: str,
    timeframes: Iterable[Timeframe],
) -> AssetIndex:
    """Scan one asset directory and group its screenshots by date key.

    Args:
        asset_dir: Directory holding the asset's screenshots.
        asset: Asset name recorded on every entry.
        timeframes: Enabled timeframes; screenshots of other timeframes are skipped.

    Returns:
        AssetIndex: Entries sorted by date, then sequence.

    Raises:
        DirectoryNotFoundError: If ``asset_dir`` does not exist.
        PathError: If ``asset_dir`` cannot be listed.
    """
    enabled = frozenset(timeframes)
    files = list_image_files(asset_dir)
    LOGGER.info("Scanning %s: %d image files in %s", asset, len(files), asset_dir)

    grouped: dict[str, dict] = {}
    for path in files:
        parsed = parse(path.name, enabled)
        if parsed is None:
            LOGGER.debug("Skipping %s: not a recognized screenshot name", path.name)
            continue

        date_key = parsed.date_key
        bucket = grouped.setdefault(
            date_key,
            {"date": parsed.date, "sequence": parsed.sequence, "images": {}},
        )
        previous = bucket["images"].get(parsed.timeframe)
        if previous is not None:
            LOGGER.warning(
                "%s %s: %s replaces %s in the %s slot",
                asset,
                date_key,
                path.name,
                previous.filename,
                parsed.timeframe.value,
            )
        bucket["images"][parsed.timeframe] = ImageAsset(
            asset=asset,
            timeframe=parsed.timeframe,
            filename=path.name,
            path=path.resolve(),
        )
        LOGGER.debug("Assigned %s to %s %s", path.name, date_key, parsed.timeframe.value)

    entries = [
        DateEntry(
            asset=asset,
            date=bucket["date"],
            sequence=bucket["sequence"],
            date_key=date_key,
            images=bucket["images"],
        )
        for date_key, bucket in grouped.items()
    ]
    entries.sort(key=lambda entry: (entry.date, entry.sequence))
    LOGGER.info("Scanned %s: %d date entries", asset, len(entries))
    return AssetIndex(asset=asset, entries=tuple(entries))


def scan_asset(base_dir: Path, asset: str, timeframes: Iterable[Timeframe]) -> AssetIndex:
    """Scan ``base_dir/asset``, mapping a missing or unreadable directory to an empty index."""
    asset_dir = base_dir / asset
    try:
        return build_asset_index(asset_dir, asset, timeframes)
    except DirectoryNotFoundError:
        LOGGER.warning("Asset directory not found for %s: %s", asset, asset_dir)
    except PathError as exc:
        LOGGER.error("Asset %s is unavailable: %s", asset, exc)
    return AssetIndex(asset=asset)


def build_index(
    base_dir: Path,
    assets: Sequence[str],
    timeframes: Iterable[Timeframe],
) -> IndexSnapshot:
    """Build the full index for every configured asset.

    A failure for one asset leaves that asset empty without aborting the others.

    Raises:
        DirectoryNotFoundError: If ``base_dir`` itself does not exist.
    """
    if not base_dir.is_dir():
        LOGGER.error("Library base path does not exist: %s", base_dir)
        raise DirectoryNotFoundError(base_dir)

    enabled = frozenset(timeframes)
    LOGGER.info("Building index for %d assets under %s", len(assets), base_dir)
    snapshot = IndexSnapshot(assets={asset: scan_asset(base_dir, asset, enabled) for asset in assets})
    LOGGER.info("Index built for %d assets", len(snapshot.assets))
    return snapshot


def next_sequence(asset_dir: Path, date: str) -> int:
    """Return the next free sequence number for ``date`` within ``asset_dir``.

    Every file following the filename grammar counts, whatever its timeframe
    token, so a new batch never shares a sequence with files already on disk.

    Args:
        asset_dir: Asset directory.
        date: Date as ``YYYY-MM-DD``.

    Returns:
        int: ``max(existing) + 1``, or ``1`` when the date has no files.
    """
    prefix = to_filename_date(date)
    try:
        files = list_image_files(asset_dir)
    except DirectoryNotFoundError:
        return 1

    sequences = []
    for path in files:
        if not path.name.startswith(prefix):
            continue
        raw = match_filename(path.name)
        if raw is not None and raw.date == date:
            sequences.append(raw.sequence)
    return max(sequences, default=0) + 1


def find_entry_files(asset_dir: Path, date_key: str) -> list[Path]:
    """Return files in ``asset_dir`` whose parsed date key equals ``date_key``.

    Any canonical timeframe counts, enabled or not, so that deleting or renaming
    an entry never leaves screenshots of a hidden timeframe behind.
    """
    matches = []
    for path in list_image_files(asset_dir):
        parsed = parse(path.name)
        if parsed is not None and parsed.date_key == date_key:
            matches.append(path)
    return matches


def occupied_date_keys(asset_dir: Path) -> set[str]:
    """Return every date key that has at least one screenshot on disk."""
    try:
        files = list_image_files(asset_dir)
    except DirectoryNotFoundError:
        return set()
    keys = set()
    for path in files:
        parsed = parse(path.name)
        if parsed is not None:
            keys.add(make_date_key(parsed.date, parsed.sequence))
    return keys


def compute_stats(snapshot: IndexSnapshot) -> IndexStats:
    """Count entries and screenshots per asset and timeframe."""
    overall: Counter[Timeframe] = Counter()
    by_asset: dict[str, AssetStats] = {}

    for asset, asset_index in snapshot.assets.items():
        counts: Counter[Timeframe] = Counter()
        for entry in asset_index:
            counts.update(entry.images.keys())
        overall.update(counts)
        by_asset[asset] = AssetStats(total_entries=len(asset_index), by_timeframe=dict(counts))

    return IndexStats(
        total_assets=len(snapshot.assets),
        by_timeframe=dict(overall),
        by_asset=by_asset,
    )


__all__ = [
    "list_image_files",
    "build_asset_index",
    "scan_asset",
    "build_index",
    "next_sequence",
    "find_entry_files",
    "occupied_date_keys",
    "compute_stats",
]
