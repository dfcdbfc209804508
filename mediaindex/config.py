"""Configuration module for mediaindex."""

from dataclasses import dataclass, field
from pathlib import Path


def _get_project_root() -> Path:
    return Path(__file__).parent.parent


@dataclass
class ScannerConfig:
    progress_interval: int = 100
    max_path_length: int = 4096
    layout_detectors: tuple[str, ...] = ("nfo", "episode-naming", "movie")
    # A directory with more entries than this is never treated as a single movie.
    max_movie_dir_entries: int = 13
    probe_timeout: float = 30.0


@dataclass
class ThumbnailConfig:
    directory: Path = field(default_factory=lambda: _get_project_root() / "data" / "thumbs")
    size: int = 256
    generate: bool = True


@dataclass
class SearchConfig:
    result_cap: int = 5000
    overflow: str = "truncate"  # or "refuse"


@dataclass
class Config:
    database_path: Path = field(default_factory=lambda: _get_project_root() / "data" / "media.db")
    busy_timeout: float = 5.0
    thumbnails: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
