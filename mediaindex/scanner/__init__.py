"""Scanner module for mediaindex."""

from .job import ScanJob
from .progress import ScanStats
from .scanner import Scanner
from .state import ScanOutcome, ScanPhase, ScanProgress, ScanState

__all__ = [
    "Scanner",
    "ScanJob",
    "ScanStats",
    "ScanState",
    "ScanPhase",
    "ScanProgress",
    "ScanOutcome",
]
