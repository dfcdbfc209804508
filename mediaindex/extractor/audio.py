"""Audio tag reading with mutagen.

ID3, MP4 and Vorbis-style tags are flattened into one dict keyed by
lower-case Vorbis names (``title``, ``artist``, ``albumartist`` ...).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from mutagen import File as MutagenFile
from mutagen import MutagenError
from mutagen.id3 import ID3
from mutagen.mp4 import MP4Cover, MP4Tags

from mediaindex.database.models import Chapter
from mediaindex.errors import ExtractionFailed

logger = logging.getLogger(__name__)

ID3_KEYS = {
    "TIT2": "title",
    "TALB": "album",
    "TPE1": "artist",
    "TPE2": "albumartist",
    "TCOM": "composer",
    "TCON": "genre",
    "TRCK": "tracknumber",
    "TDRC": "date",
    "COMM": "comment",
}

MP4_KEYS = {
    "\xa9nam": "title",
    "\xa9alb": "album",
    "\xa9ART": "artist",
    "aART": "albumartist",
    "\xa9wrt": "composer",
    "\xa9gen": "genre",
    "\xa9day": "date",
    "\xa9cmt": "comment",
    "desc": "description",
}


@dataclass
class AudioTags:
    tags: dict[str, str] = field(default_factory=dict)
    duration: float | None = None
    cover: bytes | None = None
    cover_mime: str | None = None
    chapters: list[Chapter] = field(default_factory=list)

    def get(self, *keys: str) -> str | None:
        """Return the first non-empty tag among ``keys``."""
        for key in keys:
            value = self.tags.get(key)
            if value:
                return value
        return None


def _first(value) -> str | None:
    if isinstance(value, list | tuple):
        value = value[0] if value else None
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _read_id3(tags: ID3, result: AudioTags) -> None:
    for frame_id, key in ID3_KEYS.items():
        frames = tags.getall(frame_id)
        if frames and getattr(frames[0], "text", None):
            value = _first(frames[0].text)
            if value:
                result.tags[key] = value

    pictures = tags.getall("APIC")
    if pictures:
        # Prefer the front cover (picture type 3)
        picture = next((p for p in pictures if p.type == 3), pictures[0])
        result.cover = picture.data
        result.cover_mime = picture.mime

    for frame in sorted(tags.getall("CHAP"), key=lambda f: f.start_time):
        title = frame.sub_frames.get("TIT2")
        start = frame.start_time / 1000
        end = frame.end_time / 1000 if frame.end_time > frame.start_time else None
        result.chapters.append(
            Chapter(start=start, end=end, name=_first(title.text) if title else None)
        )


def _read_mp4(tags: MP4Tags, result: AudioTags) -> None:
    for atom, key in MP4_KEYS.items():
        value = _first(tags.get(atom))
        if value:
            result.tags[key] = value

    track = tags.get("trkn")
    if track and track[0] and track[0][0]:
        result.tags["tracknumber"] = str(track[0][0])

    covers = tags.get("covr")
    if covers:
        cover = covers[0]
        result.cover = bytes(cover)
        if getattr(cover, "imageformat", None) == MP4Cover.FORMAT_PNG:
            result.cover_mime = "image/png"
        else:
            result.cover_mime = "image/jpeg"


def _read_generic(tags, result: AudioTags) -> None:
    # Vorbis comments and APEv2 both behave like case-insensitive mappings
    for key in tags.keys():
        value = _first(tags[key])
        if value:
            result.tags.setdefault(key.lower(), value)


def read_audio_tags(path: str | Path) -> AudioTags:
    """Read tags, duration, cover art and chapters from an audio file.

    Raises:
        ExtractionFailed: mutagen cannot open the container.
    """
    try:
        audio = MutagenFile(str(path))
    except (MutagenError, OSError) as e:
        raise ExtractionFailed(path, str(e)) from e

    if audio is None:
        raise ExtractionFailed(path, "unsupported audio container")

    result = AudioTags()
    info = getattr(audio, "info", None)
    if info is not None:
        result.duration = getattr(info, "length", None) or None

    tags = audio.tags
    if isinstance(tags, ID3):
        _read_id3(tags, result)
    elif isinstance(tags, MP4Tags):
        _read_mp4(tags, result)
    elif tags is not None:
        _read_generic(tags, result)

    # FLAC keeps pictures outside the Vorbis comment block
    pictures = getattr(audio, "pictures", None)
    if result.cover is None and pictures:
        result.cover = pictures[0].data
        result.cover_mime = pictures[0].mime

    return result
