"""Data models for the database."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class MediaKind(Enum):
    """Discriminant of an indexed entry."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    UNKNOWN = "unknown"


@dataclass
class Chapter:
    """A chapter of a video or audio entry. Times are in seconds."""

    start: float
    end: float | None = None
    name: str | None = None
    id: int | None = field(default=None, compare=False)


@dataclass
class VideoDetails:
    directors: list[str] = field(default_factory=list)
    actors: list[str] = field(default_factory=list)
    release_date: date | None = None
    duration: float | None = None
    width: int | None = None
    height: int | None = None
    frame_rate: float | None = None
    audio_languages: list[str] = field(default_factory=list)
    subtitle_languages: list[str] = field(default_factory=list)


@dataclass
class AudioDetails:
    artist: str | None = None
    album_artist: str | None = None
    composer: str | None = None
    album: str | None = None
    genre: str | None = None
    track_index: int | None = None
    duration: float | None = None


@dataclass
class ImageDetails:
    taken_at: float | None = None
    lens_model: str | None = None
    focal_length: float | None = None
    exposure_time: float | None = None
    f_number: float | None = None
    gps_latitude: float | None = None
    gps_longitude: float | None = None
    gps_altitude: float | None = None
    width: int | None = None
    height: int | None = None


Details = VideoDetails | AudioDetails | ImageDetails

DETAILS_TYPES: dict[MediaKind, type] = {
    MediaKind.VIDEO: VideoDetails,
    MediaKind.AUDIO: AudioDetails,
    MediaKind.IMAGE: ImageDetails,
}


@dataclass
class MediaEntry:
    """One indexed file, or one episode of a collection."""

    path: str
    kind: MediaKind
    size: int = 0
    created_at: float | None = None
    modified_at: float | None = None
    title: str | None = None
    description: str | None = None
    thumbnail: str | None = None
    collection_id: int | None = None
    season_index: int | None = None
    episode_index: int | None = None
    extraction_error: str | None = None
    details: Details | None = None
    chapters: list[Chapter] = field(default_factory=list)
    id: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.details is None:
            return
        expected = DETAILS_TYPES.get(self.kind)
        if expected is None or not isinstance(self.details, expected):
            raise ValueError(
                f"{type(self.details).__name__} does not belong to a {self.kind.value} entry"
            )

    @property
    def video(self) -> VideoDetails | None:
        return self.details if isinstance(self.details, VideoDetails) else None

    @property
    def audio(self) -> AudioDetails | None:
        return self.details if isinstance(self.details, AudioDetails) else None

    @property
    def image(self) -> ImageDetails | None:
        return self.details if isinstance(self.details, ImageDetails) else None


@dataclass
class EntryStamp:
    """The part of a stored entry the scanner needs to decide staleness."""

    id: int
    modified_at: float | None
    collection_id: int | None = None
    season_index: int | None = None
    episode_index: int | None = None


@dataclass
class Collection:
    """Episodes of one show season, grouped by their directory."""

    id: int | None
    show_title: str
    season_number: int | None
    directory: str
    created_at: float


@dataclass
class Tag:
    id: int | None
    name: str
    created_at: float
    entry_count: int = 0


@dataclass
class SavedSearch:
    """A persisted query definition. Predicates are stored as plain dicts."""

    id: int | None
    name: str
    media_types: list[str]
    predicates: list[dict]
    sort_by: str
    descending: bool
    created_at: float
    last_used_at: float | None = None


@dataclass
class ParsedFilename:
    """Parsed components of a filename."""

    full: str
    base: str
    extension: str | None
