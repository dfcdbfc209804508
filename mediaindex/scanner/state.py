"""Shared scan state: the phase machine observed by the foreground."""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum

from mediaindex.errors import DatabaseBusy

logger = logging.getLogger(__name__)


class ScanPhase(Enum):
    IDLE = "idle"
    ENUMERATING = "enumerating"
    EXTRACTING = "extracting"
    RECONCILING = "reconciling"
    CANCELLED = "cancelled"


class ScanOutcome(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanProgress:
    """Immutable snapshot of the scan state."""

    phase: ScanPhase = ScanPhase.IDLE
    root: str | None = None
    recursive: bool = True
    files_seen: int = 0
    files_indexed: int = 0
    files_failed: int = 0
    entries_removed: int = 0
    directories_done: int = 0
    current_directory: str | None = None
    started_at: float | None = None
    last_outcome: ScanOutcome | None = None
    last_error: str | None = None

    @property
    def active(self) -> bool:
        return self.phase != ScanPhase.IDLE


ProgressCallback = Callable[[ScanProgress], None]


class ScanState:
    """Thread-safe scan phase and counters.

    The background scan writes, the foreground reads through
    :meth:`snapshot` or a :meth:`subscribe` callback. Callbacks run on the
    scanning thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._writes = threading.Lock()
        self._progress = ScanProgress()
        self._subscribers: list[ProgressCallback] = []

    @property
    def active(self) -> bool:
        with self._lock:
            return self._progress.active

    def snapshot(self) -> ScanProgress:
        with self._lock:
            return self._progress

    def try_activate(self, root: str, recursive: bool) -> bool:
        """Atomically move from idle to enumerating. False if a scan is running."""
        with self._writes, self._lock:
            if self._progress.active:
                return False
            self._progress = ScanProgress(
                phase=ScanPhase.ENUMERATING,
                root=root,
                recursive=recursive,
                started_at=time.time(),
                last_outcome=self._progress.last_outcome,
            )
            snapshot = self._progress
        self._notify(snapshot)
        return True

    def ensure_idle(self, operation: str) -> None:
        """Raise :class:`DatabaseBusy` if a scan is running."""
        if self.active:
            raise DatabaseBusy(operation)

    @contextmanager
    def idle_write(self, operation: str) -> Iterator[None]:
        """Run a foreground write with scans held off until it finishes.

        Raises :class:`DatabaseBusy` if a scan is already running.
        """
        with self._writes:
            self.ensure_idle(operation)
            yield

    def set_phase(self, phase: ScanPhase, directory: str | None = None) -> None:
        changes: dict = {"phase": phase}
        if directory is not None:
            changes["current_directory"] = directory
        self._update(**changes)

    def record_file(self, indexed: bool = False, failed: bool = False) -> None:
        with self._lock:
            p = self._progress
            self._progress = replace(
                p,
                files_seen=p.files_seen + 1,
                files_indexed=p.files_indexed + int(indexed),
                files_failed=p.files_failed + int(failed),
            )
            snapshot = self._progress
        self._notify(snapshot)

    def record_removed(self, count: int) -> None:
        if count:
            with self._lock:
                p = self._progress
                self._progress = replace(p, entries_removed=p.entries_removed + count)
                snapshot = self._progress
            self._notify(snapshot)

    def record_directory_done(self) -> None:
        with self._lock:
            p = self._progress
            self._progress = replace(p, directories_done=p.directories_done + 1)

    def finish(self, outcome: ScanOutcome, error: str | None = None) -> None:
        self._update(
            phase=ScanPhase.IDLE,
            current_directory=None,
            last_outcome=outcome,
            last_error=error,
        )

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register ``callback`` for every change. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _update(self, **changes) -> None:
        with self._lock:
            self._progress = replace(self._progress, **changes)
            snapshot = self._progress
        self._notify(snapshot)

    def _notify(self, snapshot: ScanProgress) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Scan progress subscriber %r failed", callback)
