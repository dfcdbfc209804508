"""Background scan job running one Scanner on a worker thread."""

import logging
import threading
from pathlib import Path

from mediaindex.config import Config
from mediaindex.database import Database, Store
from mediaindex.errors import DatabaseBusy
from mediaindex.extractor import ExtractionAdapter
from mediaindex.scanner.progress import ScanStats
from mediaindex.scanner.scanner import Scanner
from mediaindex.scanner.state import ScanOutcome, ScanState

logger = logging.getLogger(__name__)


class ScanJob:
    """Runs scans in the background, at most one at a time.

    The worker opens its own database connection; the only objects shared
    with the caller are the :class:`ScanState` and the cancel event.
    """

    def __init__(self, config: Config, state: ScanState, adapter: ExtractionAdapter):
        self.config = config
        self.state = state
        self.adapter = adapter
        self.stats: ScanStats | None = None
        self._cancel = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, root: Path, recursive: bool = True) -> None:
        """Start scanning ``root``.

        Raises:
            NotADirectoryError: ``root`` is not a directory.
            DatabaseBusy: another scan is still running.
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise NotADirectoryError(f"Not a directory: {root}")
        if not self.state.try_activate(str(root), recursive):
            raise DatabaseBusy("start a scan")

        self.stats = None
        self._cancel = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(root, recursive),
            name="media-scan",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        if self.running:
            logger.info("Cancelling scan")
        self._cancel.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker. Returns True once no scan is running."""
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.running

    def _run(self, root: Path, recursive: bool) -> None:
        outcome = ScanOutcome.FAILED
        error = None
        try:
            with Database(self.config.database_path, self.config.busy_timeout) as db:
                scanner = Scanner(
                    Store(db),
                    self.adapter,
                    state=self.state,
                    config=self.config.scanner,
                    cancel_event=self._cancel,
                    skip_dirs={self.config.thumbnails.directory.resolve()},
                )
                self.stats = scanner.scan(root, recursive)
            outcome = ScanOutcome.CANCELLED if self.stats.cancelled else ScanOutcome.COMPLETED
        except Exception as e:
            logger.exception("Scan of %s failed", root)
            error = str(e)
        finally:
            self.state.finish(outcome, error)
