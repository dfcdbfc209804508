"""Main scanner implementation."""

import logging
import threading
from pathlib import Path

from mediaindex.config import ScannerConfig
from mediaindex.database import EntryStamp, MediaEntry, MediaKind, Store
from mediaindex.errors import ExtractionFailed
from mediaindex.extractor import EntryFields, ExtractionAdapter, ExtractionHints
from mediaindex.scanner.classify import classify_file
from mediaindex.scanner.collections import (
    DirectoryContents,
    DirectoryLayout,
    LayoutKind,
    detect_layout,
    get_detector,
)
from mediaindex.scanner.filesystem import (
    DirectoryListing,
    FileInfo,
    list_directory,
    stat_file,
    walk_directory,
)
from mediaindex.scanner.progress import ProgressReporter, ScanStats
from mediaindex.scanner.state import ScanPhase, ScanState

logger = logging.getLogger(__name__)


class Scanner:
    """Walks directories, extracts changed files and reconciles the store.

    Each directory goes through enumerating, extracting and reconciling in
    turn. Extraction happens outside any store transaction; only the final
    upsert of each file is transactional.
    """

    def __init__(
        self,
        store: Store,
        adapter: ExtractionAdapter,
        state: ScanState | None = None,
        config: ScannerConfig | None = None,
        cancel_event: threading.Event | None = None,
        skip_dirs: set[Path] | None = None,
    ):
        self.store = store
        self.adapter = adapter
        self.state = state or ScanState()
        self.config = config or ScannerConfig()
        self.cancel_event = cancel_event or threading.Event()
        self.skip_dirs = {Path(p) for p in skip_dirs or ()}
        self.progress = ProgressReporter(interval=self.config.progress_interval)
        self._collections: dict[Path, int] = {}
        self.detectors = [
            get_detector(name, self.config.max_movie_dir_entries)
            for name in self.config.layout_detectors
        ]

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def scan(self, root: Path, recursive: bool = True) -> ScanStats:
        root = Path(root).resolve()
        if not root.is_dir():
            raise NotADirectoryError(f"Not a directory: {root}")

        logger.info("Starting scan of %s (recursive=%s)", root, recursive)
        stats = ScanStats()

        for listing in walk_directory(
            root, recursive, self.skip_dirs, self.config.max_path_length
        ):
            if self.cancelled or not self._scan_directory(listing, recursive, stats):
                stats.cancelled = True
                self.state.set_phase(ScanPhase.CANCELLED)
                break

        self.progress.report_completion(stats)
        return stats

    def index_single(self, path: Path, force: bool = False) -> int | None:
        """Index one file using its directory's layout.

        Returns the entry id, or ``None`` when the file is not indexable.
        Raises ``OSError`` if the file cannot be read.
        """
        path = Path(path).resolve()
        info = stat_file(path)
        listing = list_directory(path.parent, self.skip_dirs, self.config.max_path_length)
        kinds, layout = self._detect(listing)
        kind = kinds.get(path) or classify_file(path, info.parsed_filename.extension)
        if kind == MediaKind.UNKNOWN or path in layout.consumed:
            return None

        self._collections.clear()
        return self._index_file(info, kind, layout, ScanStats(), force=force)

    def _detect(self, listing: DirectoryListing) -> tuple[dict[Path, MediaKind], DirectoryLayout]:
        kinds = {
            info.path: classify_file(info.path, info.parsed_filename.extension)
            for info in listing.files
        }
        contents = DirectoryContents(
            directory=listing.directory,
            kinds=kinds,
            entry_count=len(listing.files) + len(listing.subdirs),
        )
        return kinds, detect_layout(contents, self.detectors)

    def _collection_for(self, path: Path, kind: MediaKind, layout: DirectoryLayout) -> int | None:
        """Collection id for an episode, creating the collection on first use."""
        if kind != MediaKind.VIDEO or layout.kind != LayoutKind.COLLECTION:
            return None
        if path not in layout.hints:
            return None
        directory = path.parent
        if directory not in self._collections:
            self._collections[directory] = self.store.ensure_collection(
                directory, layout.show_title or "", layout.season
            )
        return self._collections[directory]

    def _scan_directory(
        self, listing: DirectoryListing, recursive: bool, stats: ScanStats
    ) -> bool:
        """Scan one directory. Returns False if cancelled part way."""
        directory = listing.directory
        self.state.set_phase(ScanPhase.ENUMERATING, str(directory))

        kinds, layout = self._detect(listing)
        indexable = [
            info
            for info in listing.files
            if kinds[info.path] != MediaKind.UNKNOWN and info.path not in layout.consumed
        ]
        stats.files_skipped += len(listing.files) - len(indexable)
        self._collections.clear()

        self.state.set_phase(ScanPhase.EXTRACTING)
        fresh: set[str] = set()
        for info in indexable:
            if self.cancelled:
                logger.info("Scan cancelled in %s, skipping reconciliation", directory)
                return False
            fresh.add(str(info.path))
            try:
                self._index_file(info, kinds[info.path], layout, stats)
            except OSError as e:
                logger.warning("Skipping unreadable file path=%s reason=%s", info.path, e)
                stats.files_skipped += 1
                self.state.record_file()
                if not info.path.exists():
                    fresh.discard(str(info.path))
            self.progress.report_if_needed(stats, str(directory))

        stats.directories_scanned += 1

        if not listing.readable:
            logger.warning("Not reconciling unreadable directory %s", directory)
            return True

        self.state.set_phase(ScanPhase.RECONCILING)
        self._reconcile(listing, fresh, recursive, stats)
        self.state.record_directory_done()
        return True

    def _index_file(
        self,
        info: FileInfo,
        kind: MediaKind,
        layout: DirectoryLayout,
        stats: ScanStats,
        force: bool = False,
    ) -> int:
        stats.files_seen += 1
        stats.total_bytes += info.size

        stamp = self.store.get_stamp(info.path)
        if stamp and not force and stamp.modified_at == info.modified_at:
            stats.files_unchanged += 1
            self._regroup(info.path, kind, layout, stamp)
            self.state.record_file()
            return stamp.id

        hints = layout.hints.get(info.path) or ExtractionHints()
        error = None
        try:
            fields = self.adapter.extract(info.path, kind, hints)
        except ExtractionFailed as e:
            logger.warning("extraction failed path=%s reason=%s", e.path, e.reason)
            fields = EntryFields()
            error = e.reason

        collection_id = self._collection_for(info.path, kind, layout)
        is_episode = collection_id is not None
        entry = MediaEntry(
            path=str(info.path),
            kind=kind,
            size=info.size,
            created_at=info.created_at,
            modified_at=info.modified_at,
            title=fields.title,
            description=fields.description,
            thumbnail=fields.thumbnail,
            collection_id=collection_id,
            season_index=fields.season_index if is_episode else None,
            episode_index=fields.episode_index if is_episode else None,
            extraction_error=error,
            details=fields.details,
            chapters=fields.chapters,
        )
        entry_id = self.store.upsert_entry(entry, force=force)

        if error:
            stats.files_failed += 1
        else:
            stats.files_indexed += 1
        self.state.record_file(indexed=error is None, failed=error is not None)
        return entry_id

    def _regroup(
        self, path: Path, kind: MediaKind, layout: DirectoryLayout, stamp: EntryStamp
    ) -> None:
        """Apply the directory's current grouping to an unchanged entry."""
        collection_id = self._collection_for(path, kind, layout)
        if collection_id is None:
            wanted = (None, None, None)
        else:
            hints = layout.hints[path]
            wanted = (
                collection_id,
                hints.season if hints.season is not None else stamp.season_index,
                hints.episode if hints.episode is not None else stamp.episode_index,
            )
        current = (stamp.collection_id, stamp.season_index, stamp.episode_index)
        if wanted != current:
            logger.debug("Regrouping %s: %s -> %s", path, current, wanted)
            self.store.set_grouping(stamp.id, *wanted)

    def _reconcile(
        self,
        listing: DirectoryListing,
        fresh: set[str],
        recursive: bool,
        stats: ScanStats,
    ) -> None:
        directory = listing.directory
        stale = self.store.list_paths_in(directory) - fresh
        removed = self.store.delete_entries(sorted(stale))

        if recursive:
            present = {str(p) for p in listing.subdirs}
            for child in sorted(self.store.child_directories(directory) - present):
                logger.info("Directory vanished, removing its entries: %s", child)
                removed += self.store.delete_entries_under(child)

        if removed:
            logger.info("Removed %d stale entries under %s", removed, directory)
        stats.entries_removed += removed
        self.state.record_removed(removed)
        self.store.prune_empty_collections()
