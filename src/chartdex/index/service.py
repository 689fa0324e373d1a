"""Index service: snapshot reads and filesystem mutations with rescan-and-swap."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional, Sequence

from chartdex.config import ChartdexConfig, validate_library
from chartdex.notes import NoteRepository, NoteStore, NoteStoreError, note_key

from .errors import (
    AssetNotFoundError,
    DirectoryNotFoundError,
    EntryNotFoundError,
    InvalidRequestError,
    NotFoundError,
    PartialRenameError,
    PathError,
    RenameCollisionError,
    UploadIOError,
)
from .grammar import (
    format_filename,
    has_image_extension,
    make_date_key,
    match_filename,
    normalize_date,
    split_date_key,
    to_filename_date,
)
from .models import AssetIndex, DateEntry, IndexSnapshot, IndexStats
from .scanner import (
    build_index,
    compute_stats,
    find_entry_files,
    next_sequence,
    occupied_date_keys,
    scan_asset,
)
from .timeframes import Timeframe, coerce_timeframe

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class UploadResult:
    """Outcome of a successful upload batch.

    Attributes:
        asset: Asset that received the screenshots.
        date_key: Date key shared by the batch.
        sequence: Sequence allocated to the batch.
        paths: Files written, in timeframe order.
        entry: Date entry as it appears in the refreshed index.
    """

    asset: str
    date_key: str
    sequence: int
    paths: list[Path]
    entry: Optional[DateEntry]


@dataclass(slots=True)
class DeleteResult:
    """Outcome of deleting a date entry."""

    asset: str
    date_key: str
    removed: list[Path]
    note_deleted: bool


@dataclass(slots=True)
class RenameResult:
    """Outcome of moving a date entry to another date."""

    asset: str
    old_date_key: str
    new_date_key: str
    renamed: list[tuple[Path, Path]] = field(default_factory=list)
    note_migrated: bool = False


@dataclass(slots=True)
class _MutationScope:
    asset_index: Optional[AssetIndex] = None


class ChartIndexService:
    """Own the current index snapshot and apply mutations to the library.

    Readers use :attr:`snapshot` without locking. Mutations hold a per-asset
    lock, touch the filesystem, rescan the asset, and swap in a new snapshot.
    """

    def __init__(
        self,
        base_path: Path,
        assets: Sequence[str],
        timeframes: Iterable[Timeframe],
        notes: Optional[NoteStore] = None,
    ) -> None:
        """Initialize the service and build the initial snapshot.

        Args:
            base_path: Library directory holding one subdirectory per asset.
            assets: Ordered asset names.
            timeframes: Enabled timeframes.
            notes: Note store used for delete cleanup and note migration.

        Raises:
            DirectoryNotFoundError: If ``base_path`` does not exist.
        """
        self._base_path = base_path.expanduser().resolve()
        self._assets = list(assets)
        self._timeframes = [coerce_timeframe(timeframe) for timeframe in timeframes]
        self._notes = notes
        self._asset_locks = {asset: threading.RLock() for asset in self._assets}
        self._swap_lock = threading.Lock()
        self._snapshot = build_index(self._base_path, self._assets, self._timeframes)

    @classmethod
    def from_config(
        cls,
        config: ChartdexConfig,
        *,
        notes: Optional[NoteStore] = None,
    ) -> "ChartIndexService":
        """Create a service from resolved configuration.

        Raises:
            ConfigError: If the library settings are incomplete.
            DirectoryNotFoundError: If the base path does not exist.
        """
        library = validate_library(config)
        base_path = Path(library.base_path or "").expanduser()
        if notes is None:
            if config.notes.path:
                notes = NoteRepository(Path(config.notes.path))
            else:
                notes = NoteRepository.for_library(base_path)
        return cls(base_path, library.assets, library.timeframes, notes=notes)

    # Read side ---------------------------------------------------------

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def snapshot(self) -> IndexSnapshot:
        """Return the current immutable snapshot."""
        return self._snapshot

    @property
    def notes(self) -> Optional[NoteStore]:
        return self._notes

    def list_assets(self) -> list[str]:
        return list(self._assets)

    def enabled_timeframes(self) -> list[Timeframe]:
        return list(self._timeframes)

    def get_asset_index(self, asset: str) -> AssetIndex:
        """Return the asset's entries from the current snapshot.

        Raises:
            AssetNotFoundError: If ``asset`` is not configured.
        """
        self._require_asset(asset)
        return self._snapshot.assets[asset]

    def get_entry(self, asset: str, date_key: str) -> DateEntry:
        """Return one date entry from the current snapshot.

        Raises:
            AssetNotFoundError: If ``asset`` is not configured.
            EntryNotFoundError: If the snapshot has no entry for ``date_key``.
        """
        entry = self.get_asset_index(asset).get(date_key)
        if entry is None:
            raise EntryNotFoundError(asset, date_key)
        return entry

    def stats(self) -> IndexStats:
        return compute_stats(self._snapshot)

    def resolve_image(self, asset: str, filename: str) -> Path:
        """Return the path of a screenshot inside the asset directory.

        Raises:
            AssetNotFoundError: If ``asset`` is not configured.
            NotFoundError: If ``filename`` escapes the directory, is not an image,
                or does not exist.
        """
        asset_dir = self._asset_dir(asset)
        if Path(filename).name != filename or not has_image_extension(filename):
            raise NotFoundError(f"Image {filename!r} not found for {asset}.")
        path = asset_dir / filename
        if not path.is_file():
            raise NotFoundError(f"Image {filename!r} not found for {asset}.")
        return path

    # Rescans -----------------------------------------------------------

    def refresh(self, asset: Optional[str] = None) -> IndexSnapshot:
        """Rescan one asset, or all assets, and swap in the new snapshot."""
        assets = [asset] if asset is not None else self._assets
        for name in assets:
            self._require_asset(name)
            self._rescan(name)
        return self._snapshot

    # Mutations ---------------------------------------------------------

    def upload(self, asset: str, date: str, files: Mapping[object, bytes]) -> UploadResult:
        """Write a batch of screenshots as a new date entry.

        All files of the batch share one freshly allocated sequence number and
        are written as ``YYYY.MM.DD-N_TF.png``.

        Args:
            asset: Target asset.
            date: Date as ``YYYY-MM-DD`` (``YYYY.MM.DD`` is accepted).
            files: Image bytes keyed by timeframe (canonical code or raw token).

        Returns:
            UploadResult: Paths written and the refreshed entry.

        Raises:
            AssetNotFoundError: If ``asset`` is not configured.
            InvalidRequestError: For an empty batch, a bad date, or a disabled timeframe.
            UploadIOError: If any write fails; earlier files of the batch remain.
        """
        asset_dir = self._asset_dir(asset)
        normalized_date = self._parse_date(date)
        payloads = self._validate_upload(files)

        with self._mutation(asset) as scope:
            try:
                asset_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise UploadIOError(
                    f"Cannot create asset directory {asset_dir}: {exc}", written=0, total=len(payloads)
                ) from exc

            sequence = next_sequence(asset_dir, normalized_date)
            written: list[Path] = []
            for timeframe, data in payloads:
                target = asset_dir / format_filename(normalized_date, sequence, timeframe)
                try:
                    target.write_bytes(data)
                except OSError as exc:
                    LOGGER.error(
                        "Upload for %s %s failed after %d of %d files: %s",
                        asset,
                        normalized_date,
                        len(written),
                        len(payloads),
                        exc,
                    )
                    raise UploadIOError(
                        f"Failed to write {target.name}: {exc}",
                        written=len(written),
                        total=len(payloads),
                    ) from exc
                written.append(target)

        date_key = make_date_key(normalized_date, sequence)
        LOGGER.info("Uploaded %d screenshots to %s %s", len(written), asset, date_key)
        return UploadResult(
            asset=asset,
            date_key=date_key,
            sequence=sequence,
            paths=written,
            entry=scope.asset_index.get(date_key) if scope.asset_index else None,
        )

    def delete_date_entry(self, asset: str, date_key: str) -> DeleteResult:
        """Delete every screenshot of a date entry and its note.

        Note removal is best-effort: a failing note store is logged and reported
        through ``note_deleted=False``.

        Raises:
            AssetNotFoundError: If ``asset`` is not configured.
            EntryNotFoundError: If no file matches ``date_key``.
            PathError: If a file cannot be removed.
        """
        asset_dir = self._asset_dir(asset)
        self._parse_date_key(date_key)

        with self._mutation(asset):
            files = self._entry_files(asset, asset_dir, date_key)
            removed: list[Path] = []
            for path in files:
                try:
                    path.unlink()
                except OSError as exc:
                    LOGGER.error("Cannot delete %s: %s", path, exc)
                    raise PathError(
                        f"Deleted {len(removed)} of {len(files)} files for {asset} {date_key}; "
                        f"{path.name} could not be removed: {exc}"
                    ) from exc
                removed.append(path)

        note_deleted = self._delete_note(asset, date_key)
        LOGGER.info("Deleted %s %s (%d files)", asset, date_key, len(removed))
        return DeleteResult(asset=asset, date_key=date_key, removed=removed, note_deleted=note_deleted)

    def rename_date_entry(
        self,
        asset: str,
        date_key: str,
        new_date: str,
        *,
        migrate_note: bool = False,
    ) -> RenameResult:
        """Move a date entry to another date, keeping sequence and timeframes.

        The note stays under the old key unless ``migrate_note`` is set.

        Raises:
            AssetNotFoundError: If ``asset`` is not configured.
            InvalidRequestError: If ``date_key`` or ``new_date`` is malformed.
            EntryNotFoundError: If no file matches ``date_key``.
            RenameCollisionError: If the target key is occupied; no file is touched.
            PartialRenameError: If a rename fails midway; renamed files stay renamed.
        """
        asset_dir = self._asset_dir(asset)
        _, sequence = self._parse_date_key(date_key)
        target_date = self._parse_date(new_date)
        new_key = make_date_key(target_date, sequence)

        with self._mutation(asset):
            files = self._entry_files(asset, asset_dir, date_key)
            if new_key == date_key:
                LOGGER.info("Rename of %s %s targets the same date; nothing to do", asset, date_key)
                return RenameResult(asset=asset, old_date_key=date_key, new_date_key=new_key)

            if new_key in occupied_date_keys(asset_dir):
                raise RenameCollisionError(asset, new_key)
            plan = [
                (source, asset_dir / self._renamed_filename(source.name, target_date))
                for source in files
            ]
            for _, destination in plan:
                if destination.exists():
                    raise RenameCollisionError(asset, new_key)

            renamed: list[tuple[Path, Path]] = []
            for source, destination in plan:
                try:
                    source.rename(destination)
                except OSError as exc:
                    LOGGER.error("Cannot rename %s to %s: %s", source.name, destination.name, exc)
                    raise PartialRenameError(
                        f"Renamed {len(renamed)} of {len(plan)} files for {asset} {date_key}; "
                        f"{source.name} failed: {exc}",
                        renamed=len(renamed),
                        total=len(plan),
                    ) from exc
                renamed.append((source, destination))

        note_migrated = self._migrate_note(asset, date_key, new_key) if migrate_note else False
        LOGGER.info("Renamed %s %s to %s (%d files)", asset, date_key, new_key, len(renamed))
        return RenameResult(
            asset=asset,
            old_date_key=date_key,
            new_date_key=new_key,
            renamed=renamed,
            note_migrated=note_migrated,
        )

    # Internal helpers --------------------------------------------------

    @contextmanager
    def _mutation(self, asset: str) -> Iterator[_MutationScope]:
        """Serialize work on ``asset`` and rescan it afterwards, even on failure.

        The yielded scope receives the rescanned index before the lock is released.
        """
        scope = _MutationScope()
        with self._asset_locks[asset]:
            try:
                yield scope
            finally:
                scope.asset_index = self._rescan(asset)

    def _rescan(self, asset: str) -> AssetIndex:
        """Scan ``asset`` under its lock and swap the result into the snapshot."""
        with self._asset_locks[asset]:
            asset_index = scan_asset(self._base_path, asset, self._timeframes)
            with self._swap_lock:
                self._snapshot = self._snapshot.replace(asset_index)
        return asset_index

    def _require_asset(self, asset: str) -> None:
        if asset not in self._asset_locks:
            raise AssetNotFoundError(asset)

    def _asset_dir(self, asset: str) -> Path:
        self._require_asset(asset)
        return self._base_path / asset

    def _entry_files(self, asset: str, asset_dir: Path, date_key: str) -> list[Path]:
        try:
            files = find_entry_files(asset_dir, date_key)
        except DirectoryNotFoundError as exc:
            raise EntryNotFoundError(asset, date_key) from exc
        if not files:
            raise EntryNotFoundError(asset, date_key)
        return files

    def _validate_upload(self, files: Mapping[object, bytes]) -> list[tuple[Timeframe, bytes]]:
        if not files:
            raise InvalidRequestError("An upload needs at least one screenshot.")
        payloads: dict[Timeframe, bytes] = {}
        for raw_timeframe, data in files.items():
            try:
                timeframe = coerce_timeframe(raw_timeframe)
            except ValueError as exc:
                raise InvalidRequestError(str(exc)) from exc
            if timeframe not in self._timeframes:
                raise InvalidRequestError(f"Timeframe {timeframe.value} is not enabled.")
            if timeframe in payloads:
                raise InvalidRequestError(f"Timeframe {timeframe.value} appears more than once.")
            payloads[timeframe] = data
        return [(timeframe, payloads[timeframe]) for timeframe in Timeframe if timeframe in payloads]

    def _parse_date(self, value: str) -> str:
        try:
            return normalize_date(value)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

    def _parse_date_key(self, date_key: str) -> tuple[str, int]:
        try:
            return split_date_key(date_key)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

    def _renamed_filename(self, filename: str, new_date: str) -> str:
        raw = match_filename(filename)
        if raw is None:
            raise InvalidRequestError(f"{filename} does not follow the screenshot naming scheme.")
        # only the date prefix changes
        return to_filename_date(new_date) + filename[len(to_filename_date(raw.date)) :]

    def _delete_note(self, asset: str, date_key: str) -> bool:
        if self._notes is None:
            return False
        key = note_key(asset, date_key)
        try:
            return self._notes.delete(key)
        except (NoteStoreError, OSError) as exc:
            LOGGER.warning("Could not delete note %s: %s", key, exc)
            return False

    def _migrate_note(self, asset: str, old_key: str, new_key: str) -> bool:
        if self._notes is None:
            return False
        source = note_key(asset, old_key)
        target = note_key(asset, new_key)
        rename = getattr(self._notes, "rename", None)
        try:
            if rename is not None:
                return bool(rename(source, target))
            record = self._notes.get(source)
            if record is None:
                return False
            self._notes.upsert(target, record.title, record.note)
            self._notes.delete(source)
            return True
        except (NoteStoreError, OSError) as exc:
            LOGGER.warning("Could not move note %s to %s: %s", source, target, exc)
            return False


__all__ = ["ChartIndexService", "UploadResult", "DeleteResult", "RenameResult"]
