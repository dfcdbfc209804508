"""Progress reporting utilities for scanning."""

import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class ScanStats:
    """Statistics for one scan invocation."""

    files_seen: int = 0
    files_indexed: int = 0
    files_unchanged: int = 0
    files_failed: int = 0
    files_skipped: int = 0
    entries_removed: int = 0
    directories_scanned: int = 0
    total_bytes: int = 0
    cancelled: bool = False
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time


class ProgressReporter:
    """Logs a structured progress line every ``interval`` files."""

    def __init__(self, interval: int = 100):
        self.interval = interval
        self._last_report_count = 0

    def report_if_needed(self, stats: ScanStats, current_directory: str) -> None:
        if stats.files_seen - self._last_report_count >= self.interval:
            logger.info(
                "scan progress files_seen=%d indexed=%d failed=%d rate=%.1f/s directory=%s",
                stats.files_seen,
                stats.files_indexed,
                stats.files_failed,
                stats.files_seen / max(stats.elapsed_seconds, 1e-6),
                current_directory,
            )
            self._last_report_count = stats.files_seen

    def report_completion(self, stats: ScanStats) -> None:
        logger.info(
            "scan %s files_seen=%d indexed=%d unchanged=%d failed=%d removed=%d "
            "directories=%d size=%s duration=%s",
            "cancelled" if stats.cancelled else "complete",
            stats.files_seen,
            stats.files_indexed,
            stats.files_unchanged,
            stats.files_failed,
            stats.entries_removed,
            stats.directories_scanned,
            format_bytes(stats.total_bytes),
            format_duration(stats.elapsed_seconds),
        )


def format_duration(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_bytes(size: int) -> str:
    size_f = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_f < 1024:
            return f"{size_f:.2f} {unit}"
        size_f /= 1024
    return f"{size_f:.2f} PB"
