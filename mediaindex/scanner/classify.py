"""Classification of files into media kinds by extension or content."""

import logging
from pathlib import Path

from mediaindex.database.models import MediaKind

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    "jpg", "jpeg", "jpe", "png", "gif", "webp", "bmp", "tif", "tiff", "heic", "heif",
    "avif", "jxl", "dng", "cr2", "cr3", "nef", "arw", "orf", "rw2", "raf", "srw", "pef",
}
VIDEO_EXTENSIONS = {
    "mkv", "mp4", "m4v", "avi", "mov", "wmv", "webm", "mpg", "mpeg", "m2ts", "mts",
    "ts", "flv", "ogv", "3gp", "vob", "divx",
}
AUDIO_EXTENSIONS = {
    "mp3", "flac", "ogg", "oga", "opus", "m4a", "m4b", "aac", "wav", "aif", "aiff",
    "wma", "ape", "wv", "mka", "alac", "dsf",
}

# Sidecars and other files that never hold media themselves
IGNORED_EXTENSIONS = {
    "nfo", "srt", "ass", "ssa", "sub", "idx", "vtt", "sup", "txt", "xml", "xmp",
    "json", "db", "ini", "cue", "log", "m3u", "m3u8", "pls", "tbn", "lrc", "url",
}

SNIFF_BYTES = 16


def classify_extension(extension: str | None) -> MediaKind | None:
    """Kind for a known extension, ``None`` when it is not recognised."""
    if not extension:
        return None
    ext = extension.lower().lstrip(".")
    if ext in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    if ext in AUDIO_EXTENSIONS:
        return MediaKind.AUDIO
    if ext in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if ext in IGNORED_EXTENSIONS:
        return MediaKind.UNKNOWN
    return None


def sniff_kind(header: bytes) -> MediaKind:
    """Guess the kind from the leading magic bytes of a file."""
    if header.startswith(b"\xff\xd8\xff"):
        return MediaKind.IMAGE
    if header.startswith(b"\x89PNG\r\n\x1a\n"):
        return MediaKind.IMAGE
    if header[:6] in (b"GIF87a", b"GIF89a"):
        return MediaKind.IMAGE
    if header.startswith((b"II*\x00", b"MM\x00*")):
        return MediaKind.IMAGE
    if header.startswith(b"RIFF") and len(header) >= 12:
        form = header[8:12]
        if form == b"WEBP":
            return MediaKind.IMAGE
        if form == b"WAVE":
            return MediaKind.AUDIO
        if form == b"AVI ":
            return MediaKind.VIDEO
    if header[4:8] == b"ftyp":
        brand = header[8:12]
        if brand in (b"M4A ", b"M4B "):
            return MediaKind.AUDIO
        if brand in (b"heic", b"heix", b"mif1", b"avif"):
            return MediaKind.IMAGE
        return MediaKind.VIDEO
    if header.startswith(b"\x1a\x45\xdf\xa3"):
        return MediaKind.VIDEO
    if header.startswith((b"ID3", b"fLaC", b"OggS")):
        return MediaKind.AUDIO
    # MPEG audio frame sync
    if len(header) >= 2 and header[0] == 0xFF and (header[1] & 0xE0) == 0xE0:
        return MediaKind.AUDIO
    return MediaKind.UNKNOWN


def classify_file(path: Path, extension: str | None) -> MediaKind:
    """Classify by extension, falling back to the file header.

    Returns ``MediaKind.UNKNOWN`` for files that are not indexable.
    """
    kind = classify_extension(extension)
    if kind is not None:
        return kind
    try:
        with open(path, "rb") as fh:
            header = fh.read(SNIFF_BYTES)
    except OSError as e:
        logger.debug("Cannot sniff %s: %s", path, e)
        return MediaKind.UNKNOWN
    return sniff_kind(header)
