"""Metadata extraction for video, audio and image files."""

from .adapter import EntryFields, ExtractionAdapter, ExtractionHints
from .audio import AudioTags, read_audio_tags
from .exiftool import ExiftoolNotFoundError, ExiftoolResult, ExiftoolRunner
from .ffprobe import ProbeData, probe_video
from .nfo import NfoDocument, NfoParseError, parse_nfo
from .thumbnails import ThumbnailCache

__all__ = [
    "ExtractionAdapter",
    "ExtractionHints",
    "EntryFields",
    "AudioTags",
    "read_audio_tags",
    "ExiftoolRunner",
    "ExiftoolResult",
    "ExiftoolNotFoundError",
    "ProbeData",
    "probe_video",
    "NfoDocument",
    "NfoParseError",
    "parse_nfo",
    "ThumbnailCache",
]
