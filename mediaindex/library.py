"""MediaLibrary: the entry point for browser, viewer and player front ends."""

import logging
from pathlib import Path
from typing import Self

from mediaindex.config import Config
from mediaindex.database import Database, MediaEntry, MediaKind, Store
from mediaindex.errors import NotFound
from mediaindex.extractor import ExtractionAdapter, ThumbnailCache
from mediaindex.scanner import ScanJob, Scanner, ScanProgress, ScanState
from mediaindex.scanner.state import ProgressCallback
from mediaindex.search import SearchEngine
from mediaindex.tags import TagManager

logger = logging.getLogger(__name__)


class MediaLibrary:
    """Foreground access to the index plus control of the background scan.

    The library owns one database connection for the calling thread; a
    running scan uses its own. Writes made here are refused with
    ``DatabaseBusy`` while a scan is active.
    """

    def __init__(self, config: Config | None = None, adapter: ExtractionAdapter | None = None):
        self.config = config or Config()
        if adapter is None:
            thumbnails = None
            if self.config.thumbnails.generate:
                thumbnails = ThumbnailCache(
                    self.config.thumbnails.directory,
                    size=self.config.thumbnails.size,
                    ffmpeg_timeout=self.config.scanner.probe_timeout,
                )
            adapter = ExtractionAdapter(
                thumbnails=thumbnails, probe_timeout=self.config.scanner.probe_timeout
            )
        self.adapter = adapter
        self.state = ScanState()
        self.db = Database(self.config.database_path, self.config.busy_timeout)
        self.store = Store(self.db)
        self.search = SearchEngine(self.store, self.state, self.config.search)
        self.tags = TagManager(self.store, self.state)
        self._job = ScanJob(self.config, self.state, self.adapter)

    def open(self) -> Self:
        """Connect and check the schema. Raises ``SchemaVersionMismatch``."""
        self.db.connect()
        return self

    def close(self) -> None:
        if self._job.running:
            self._job.cancel()
            self._job.join()
        self.db.close()

    def __enter__(self) -> Self:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- reads -----------------------------------------------------------

    def list_entries_in(self, directory: str | Path, recursive: bool = False) -> list[MediaEntry]:
        return self.store.list_entries_in(Path(directory).resolve(), recursive)

    def get_entry(self, path: str | Path) -> MediaEntry | None:
        return self.store.get_entry(Path(path).resolve())

    def get_entry_by_id(self, entry_id: int) -> MediaEntry | None:
        return self.store.get_entry_by_id(entry_id)

    def counts_by_kind(self) -> dict[MediaKind, int]:
        return self.store.counts_by_kind()

    # -- writes ----------------------------------------------------------

    def index_file(self, path: str | Path, force: bool = False) -> MediaEntry | None:
        """Index one file outside a full scan, e.g. when a browser opens it.

        Returns the stored entry, or ``None`` if the file is not media.
        """
        scanner = Scanner(
            self.store,
            self.adapter,
            config=self.config.scanner,
            skip_dirs={self.config.thumbnails.directory.resolve()},
        )
        with self.state.idle_write("index a file"):
            entry_id = scanner.index_single(Path(path), force=force)
        if entry_id is None:
            logger.debug("Not indexing non-media file %s", path)
            return None
        return self.store.get_entry_by_id(entry_id)

    def remove_entry(self, path: str | Path) -> bool:
        with self.state.idle_write("remove an entry"):
            return self.store.delete_entry(Path(path).resolve())

    def update_entry(self, entry: MediaEntry) -> int:
        """Store a manually edited entry, replacing its extracted fields."""
        with self.state.idle_write("edit an entry"):
            if self.store.get_stamp(entry.path) is None:
                raise NotFound(f"No entry for {entry.path}")
            return self.store.upsert_entry(entry, force=True)

    # -- scanning --------------------------------------------------------

    def start_scan(self, root: str | Path, recursive: bool = True) -> None:
        """Start a background scan. Raises ``DatabaseBusy`` if one is running."""
        self._job.start(Path(root), recursive)

    def cancel_scan(self) -> None:
        self._job.cancel()

    def wait_for_scan(self, timeout: float | None = None) -> bool:
        return self._job.join(timeout)

    def scan_progress(self) -> ScanProgress:
        return self.state.snapshot()

    def subscribe(self, callback: ProgressCallback):
        """Observe scan progress. Returns an unsubscribe function."""
        return self.state.subscribe(callback)
