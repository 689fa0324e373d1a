"""Filesystem watch service that keeps the index in step with asset directories."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from chartdex.index.errors import ChartIndexError
from chartdex.index.grammar import has_image_extension
from chartdex.index.service import ChartIndexService

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RescanResult:
    """Outcome of rescanning one asset.

    Attributes:
        asset: Asset that was rescanned.
        entries: Number of date entries after the rescan.
        triggered_paths: Paths whose events caused the rescan.
    """

    asset: str
    entries: int
    triggered_paths: list[Path]


class WatchService:
    """Rescan assets in the background when their screenshots change."""

    def __init__(
        self,
        service: ChartIndexService,
        *,
        debounce_seconds: float = 1.0,
        assets: Optional[Iterable[str]] = None,
    ) -> None:
        """Initialize the watch service.

        Args:
            service: Index service whose snapshot is refreshed.
            debounce_seconds: Quiet period after the last event before rescanning.
            assets: Assets to monitor; defaults to every configured asset.
        """
        self._service = service
        self._assets = list(assets) if assets is not None else service.list_assets()
        self._debounce_seconds = max(0.1, debounce_seconds)
        self._observer: Observer | None = None
        self._queue: queue.Queue[tuple[str | None, Path | None]] = queue.Queue()
        self._stop_event = threading.Event()

    @property
    def event_queue(self) -> queue.Queue[tuple[str | None, Path | None]]:
        return self._queue

    def process_once(self) -> list[RescanResult]:
        """Rescan every monitored asset once."""
        return [self._rescan(asset, []) for asset in self._assets]

    def watch(self, callback: Callable[[RescanResult], None]) -> None:
        """Observe asset directories and rescan after bursts of changes.

        Blocks until :meth:`stop` is called. Asset directories that do not exist
        when watching starts are not observed.

        Args:
            callback: Callable invoked with each completed rescan.
        """
        if self._observer is not None:
            raise RuntimeError("WatchService is already running.")

        self._stop_event.clear()
        self._observer = Observer()
        for asset in self._assets:
            asset_dir = self._service.base_path / asset
            if not asset_dir.is_dir():
                LOGGER.warning("Not watching %s: %s does not exist", asset, asset_dir)
                continue
            handler = _AssetEventHandler(asset, self._queue)
            self._observer.schedule(handler, str(asset_dir), recursive=False)

        self._observer.start()
        LOGGER.info("Watching %d assets under %s", len(self._assets), self._service.base_path)
        try:
            self._run_loop(callback)
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the observer and unblock the processing loop."""
        self._stop_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._queue.put((None, None))

    def drain(self) -> list[RescanResult]:
        """Rescan assets for every event currently queued, without waiting."""
        pending: dict[str, set[Path]] = defaultdict(set)
        while True:
            try:
                asset, path = self._queue.get_nowait()
            except queue.Empty:
                break
            if asset is None or path is None:
                continue
            pending[asset].add(path)
        return self._flush(pending)

    # Internal helpers -------------------------------------------------

    def _run_loop(self, callback: Callable[[RescanResult], None]) -> None:
        pending: dict[str, set[Path]] = defaultdict(set)
        flush_deadline: Optional[float] = None

        while not self._stop_event.is_set():
            timeout: Optional[float] = None
            if flush_deadline is not None:
                timeout = max(0.0, flush_deadline - time.monotonic())

            try:
                asset, path = self._queue.get(timeout=timeout)
            except queue.Empty:
                for result in self._flush(pending):
                    callback(result)
                pending.clear()
                flush_deadline = None
                continue

            if asset is None or path is None:
                break

            pending[asset].add(path)
            flush_deadline = time.monotonic() + self._debounce_seconds

    def _flush(self, pending: dict[str, set[Path]]) -> list[RescanResult]:
        results = []
        for asset, paths in pending.items():
            if not paths:
                continue
            try:
                results.append(self._rescan(asset, sorted(paths)))
            except ChartIndexError as exc:
                LOGGER.error("Rescan of %s failed: %s", asset, exc)
        return results

    def _rescan(self, asset: str, paths: list[Path]) -> RescanResult:
        snapshot = self._service.refresh(asset)
        entries = len(snapshot.assets[asset])
        LOGGER.info("Rescanned %s after %d change(s): %d date entries", asset, len(paths), entries)
        return RescanResult(asset=asset, entries=entries, triggered_paths=paths)


class _AssetEventHandler(FileSystemEventHandler):
    """Forward screenshot events of one asset directory into the service queue."""

    def __init__(self, asset: str, queue_handle: queue.Queue[tuple[str | None, Path | None]]) -> None:
        self._asset = asset
        self._queue = queue_handle

    def on_created(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)
        self._enqueue(getattr(event, "dest_path", ""), event.is_directory)

    def _enqueue(self, raw_path: str | bytes, is_directory: bool) -> None:
        if is_directory or not raw_path:
            return
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode()
        path = Path(raw_path)
        if not has_image_extension(path.name):
            return
        self._queue.put((self._asset, path))


__all__ = ["WatchService", "RescanResult"]
