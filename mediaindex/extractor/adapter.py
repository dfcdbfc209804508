"""Extraction adapter: turns one file into the fields of a media entry."""

import glob
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

from mediaindex.database.models import (
    AudioDetails,
    Chapter,
    Details,
    ImageDetails,
    MediaKind,
    VideoDetails,
)
from mediaindex.errors import ExtractionFailed

from .audio import AudioTags, read_audio_tags
from .exiftool import ExiftoolNotFoundError, ExiftoolRunner
from .ffprobe import ProbeData, probe_video
from .nfo import NfoDocument, NfoParseError, parse_nfo
from .parser import (
    clean_text,
    get_first_value,
    normalize_language,
    parse_exif_date,
    to_float,
    to_int,
    unique,
)
from .thumbnails import ThumbnailCache

logger = logging.getLogger(__name__)

ARTWORK_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".tbn")
SUBTITLE_EXTENSIONS = {".srt", ".ass", ".ssa", ".sub", ".vtt", ".idx", ".sup"}

# Formats whose EXIF blocks are rare enough that exiftool is not worth a subprocess
NO_EXIF_EXTENSIONS = {".png", ".gif", ".webp", ".bmp"}


@dataclass
class ExtractionHints:
    """Context about a file gathered from its directory layout."""

    nfo_path: Path | None = None
    poster_path: Path | None = None
    show_title: str | None = None
    season: int | None = None
    episode: int | None = None
    subtitle_files: list[Path] | None = None


@dataclass
class EntryFields:
    """Extracted, normalized fields of one entry."""

    title: str | None = None
    description: str | None = None
    details: Details | None = None
    chapters: list[Chapter] = field(default_factory=list)
    thumbnail: str | None = None
    season_index: int | None = None
    episode_index: int | None = None


def find_artwork(directory: Path, names: list[str]) -> Path | None:
    """First existing ``<name><ext>`` in ``directory``, in ``names`` order."""
    for name in names:
        for ext in ARTWORK_EXTENSIONS:
            candidate = directory / f"{name}{ext}"
            if candidate.is_file():
                return candidate
    return None


def subtitle_language(video: Path, sidecar: Path) -> str | None:
    """Language of a ``<stem>.<lang>.<ext>`` subtitle sidecar of ``video``."""
    if sidecar.suffix.lower() not in SUBTITLE_EXTENSIONS:
        return None
    inner = sidecar.name[: -len(sidecar.suffix)]
    if not inner.startswith(video.stem + "."):
        return None
    # "movie.en.forced.srt" -> "en"
    tag = inner[len(video.stem) + 1 :].split(".")[0]
    return normalize_language(tag)


def normalize_video(
    nfo: NfoDocument | None, probe: ProbeData | None
) -> tuple[str | None, str | None, VideoDetails, list[Chapter]]:
    """Merge NFO and probe data. The NFO wins for descriptive fields."""
    details = VideoDetails()
    title = description = None
    chapters: list[Chapter] = []

    if nfo is not None:
        title = nfo.title
        description = nfo.plot
        details.directors = list(nfo.directors)
        details.actors = list(nfo.actors)
        details.release_date = nfo.release_date
        details.duration = nfo.runtime
        details.width = nfo.width
        details.height = nfo.height
        details.audio_languages = list(nfo.audio_languages)
        details.subtitle_languages = list(nfo.subtitle_languages)

    if probe is not None:
        title = title or probe.title
        details.duration = details.duration or probe.duration
        details.width = details.width or probe.width
        details.height = details.height or probe.height
        details.frame_rate = probe.frame_rate
        details.audio_languages = details.audio_languages or list(probe.audio_languages)
        details.subtitle_languages = unique(
            details.subtitle_languages + probe.subtitle_languages
        )
        chapters = list(probe.chapters)

    return title, description, details, chapters


def normalize_audio(tags: AudioTags) -> tuple[str | None, str | None, AudioDetails]:
    details = AudioDetails(
        artist=tags.get("artist"),
        album_artist=tags.get("albumartist", "album artist", "album_artist"),
        composer=tags.get("composer"),
        album=tags.get("album"),
        genre=tags.get("genre"),
        track_index=to_int(tags.get("tracknumber", "track")),
        duration=tags.duration,
    )
    return tags.get("title"), tags.get("comment", "description"), details


def _signed(value, ref, negative_ref) -> float | None:
    number = to_float(value)
    if number is None:
        return None
    if str(ref).strip().upper() in negative_ref and number > 0:
        return -number
    return number


def normalize_image(meta: dict) -> tuple[str | None, str | None, ImageDetails]:
    """Map group-prefixed exiftool output (``-G0 -n``) to :class:`ImageDetails`."""
    taken = get_first_value(
        meta,
        "EXIF:DateTimeOriginal",
        "EXIF:CreateDate",
        "XMP:DateTimeOriginal",
        "XMP:CreateDate",
        "QuickTime:CreateDate",
    )

    latitude = get_first_value(meta, "Composite:GPSLatitude")
    if latitude is None:
        latitude = _signed(
            meta.get("EXIF:GPSLatitude"), meta.get("EXIF:GPSLatitudeRef"), {"S"}
        )
    longitude = get_first_value(meta, "Composite:GPSLongitude")
    if longitude is None:
        longitude = _signed(
            meta.get("EXIF:GPSLongitude"), meta.get("EXIF:GPSLongitudeRef"), {"W"}
        )
    # With -n the altitude ref is 0 (above) or 1 (below sea level)
    altitude = _signed(
        get_first_value(meta, "EXIF:GPSAltitude", "Composite:GPSAltitude"),
        meta.get("EXIF:GPSAltitudeRef"),
        {"1"},
    )

    details = ImageDetails(
        taken_at=parse_exif_date(taken),
        lens_model=clean_text(get_first_value(meta, "EXIF:LensModel", "EXIF:Lens", "XMP:Lens")),
        focal_length=to_float(get_first_value(meta, "EXIF:FocalLength", "XMP:FocalLength")),
        exposure_time=to_float(get_first_value(meta, "EXIF:ExposureTime", "XMP:ExposureTime")),
        f_number=to_float(get_first_value(meta, "EXIF:FNumber", "Composite:Aperture")),
        gps_latitude=to_float(latitude),
        gps_longitude=to_float(longitude),
        gps_altitude=altitude,
        width=to_int(
            get_first_value(meta, "File:ImageWidth", "EXIF:ExifImageWidth", "EXIF:ImageWidth")
        ),
        height=to_int(
            get_first_value(meta, "File:ImageHeight", "EXIF:ExifImageHeight", "EXIF:ImageHeight")
        ),
    )
    title = clean_text(get_first_value(meta, "XMP:Title", "IPTC:ObjectName"))
    description = clean_text(
        get_first_value(meta, "EXIF:ImageDescription", "XMP:Description", "IPTC:Caption-Abstract")
    )
    return title, description, details


class ExtractionAdapter:
    """Extracts normalized fields for one file by kind.

    Readers are plain callables so tests and callers can swap them:

    - ``audio_reader(path) -> AudioTags``
    - ``image_reader(path) -> dict`` of group-prefixed exiftool tags
    - ``video_probe(path) -> ProbeData``
    - ``nfo_reader(path) -> NfoDocument``

    Only an unreadable container or a missing tool raises
    :class:`ExtractionFailed`; malformed optional values become ``None``.
    """

    def __init__(
        self,
        thumbnails: ThumbnailCache | None = None,
        audio_reader: Callable[[Path], AudioTags] = read_audio_tags,
        image_reader: Callable[[Path], dict] | None = None,
        video_probe: Callable[[Path], ProbeData] | None = None,
        nfo_reader: Callable[[Path], NfoDocument] = parse_nfo,
        probe_timeout: float = 30.0,
    ):
        self.thumbnails = thumbnails
        self.audio_reader = audio_reader
        self.image_reader = image_reader or self._read_exif
        self.video_probe = video_probe or partial(probe_video, timeout=probe_timeout)
        self.nfo_reader = nfo_reader
        self._exiftool: ExiftoolRunner | None = None

    def extract(
        self, path: str | Path, kind: MediaKind, hints: ExtractionHints | None = None
    ) -> EntryFields:
        path = Path(path)
        hints = hints or ExtractionHints()
        if kind == MediaKind.VIDEO:
            return self._extract_video(path, hints)
        if kind == MediaKind.AUDIO:
            return self._extract_audio(path, hints)
        if kind == MediaKind.IMAGE:
            return self._extract_image(path)
        return EntryFields()

    # -- video -----------------------------------------------------------

    def _extract_video(self, path: Path, hints: ExtractionHints) -> EntryFields:
        nfo = self._read_nfo(path, hints)

        probe = None
        try:
            probe = self.video_probe(path)
        except ExtractionFailed as e:
            if nfo is None:
                raise
            logger.warning("Probe failed, using NFO only path=%s reason=%s", path, e.reason)

        title, description, details, chapters = normalize_video(nfo, probe)

        sidecars = hints.subtitle_files
        if sidecars is None:
            pattern = glob.escape(str(path.parent / path.stem)) + ".*"
            sidecars = [Path(p) for p in glob.glob(pattern)]
        languages = [subtitle_language(path, sidecar) for sidecar in sorted(sidecars)]
        details.subtitle_languages = unique(
            details.subtitle_languages + [lang for lang in languages if lang]
        )

        fields = EntryFields(
            title=title,
            description=description,
            details=details,
            chapters=chapters,
            season_index=hints.season,
            episode_index=hints.episode,
        )
        if nfo is not None and nfo.kind == "episodedetails":
            fields.season_index = nfo.season if nfo.season is not None else hints.season
            fields.episode_index = nfo.episode if nfo.episode is not None else hints.episode

        poster = hints.poster_path or find_artwork(
            path.parent, [f"{path.stem}-poster", f"{path.stem}-thumb"]
        )
        if poster is not None:
            fields.thumbnail = str(poster)
        elif self.thumbnails is not None:
            fields.thumbnail = self.thumbnails.from_video(path, details.duration)
        return fields

    def _read_nfo(self, path: Path, hints: ExtractionHints) -> NfoDocument | None:
        nfo_path = hints.nfo_path
        if nfo_path is None:
            candidate = path.with_suffix(".nfo")
            nfo_path = candidate if candidate.is_file() else None
        if nfo_path is None:
            return None
        try:
            return self.nfo_reader(nfo_path)
        except (NfoParseError, OSError) as e:
            logger.warning("Ignoring unreadable NFO path=%s reason=%s", nfo_path, e)
            return None

    # -- audio -----------------------------------------------------------

    def _extract_audio(self, path: Path, hints: ExtractionHints) -> EntryFields:
        tags = self.audio_reader(path)
        title, description, details = normalize_audio(tags)
        fields = EntryFields(
            title=title, description=description, details=details, chapters=tags.chapters
        )

        poster = hints.poster_path or find_artwork(
            path.parent, [f"{path.stem}-poster", "poster", "folder", "cover"]
        )
        if poster is not None:
            fields.thumbnail = str(poster)
        elif tags.cover and self.thumbnails is not None:
            fields.thumbnail = self.thumbnails.from_bytes(path, tags.cover)
        return fields

    # -- image -----------------------------------------------------------

    def _extract_image(self, path: Path) -> EntryFields:
        if path.suffix.lower() in NO_EXIF_EXTENSIONS:
            title, description, details = None, None, ImageDetails()
        else:
            try:
                meta = self.image_reader(path)
            except ExiftoolNotFoundError as e:
                raise ExtractionFailed(path, str(e)) from e
            title, description, details = normalize_image(meta)

        fields = EntryFields(title=title, description=description, details=details)
        if self.thumbnails is not None:
            fields.thumbnail = self.thumbnails.from_image(path)
        return fields

    def _read_exif(self, path: Path) -> dict:
        if self._exiftool is None:
            self._exiftool = ExiftoolRunner()
        result = self._exiftool.extract_single(str(path))
        if result.error:
            raise ExtractionFailed(path, result.error)
        return result.metadata

