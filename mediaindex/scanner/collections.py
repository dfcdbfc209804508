"""Directory layout detection: plain folders, movie folders and show seasons.

Detectors are tried in the configured order and the first verdict wins.
Borderline directories and detector disagreements are logged as ambiguous
so a surprising grouping can be traced back to its cause.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from mediaindex.database.models import MediaKind
from mediaindex.extractor.adapter import SUBTITLE_EXTENSIONS, ExtractionHints
from mediaindex.extractor.nfo import NfoDocument, NfoParseError, parse_nfo

logger = logging.getLogger(__name__)

SERIES_YEAR_RE = re.compile(r"^(?P<title>.+?)\s*\((?P<year>\d{4})\)$")
SEASON_DIR_RE = re.compile(r"^(?:season|series|staffel|saison)[\s._-]*(?P<number>\d{1,3})$", re.I)
SEASON_SHORT_RE = re.compile(r"^s(?P<number>\d{1,3})$", re.I)
SPECIALS_DIR_RE = re.compile(r"^(?:specials|season[\s._-]*0{1,2})$", re.I)
EPISODE_TOKEN_RE = re.compile(r"S(?P<season>\d{1,2})[\s._-]?E(?P<episode>\d{1,3})", re.I)
ALT_EPISODE_TOKEN_RE = re.compile(r"(?:^|[^\d])(?P<season>\d{1,2})x(?P<episode>\d{2,3})(?:[^\d]|$)", re.I)
TRAILING_NUMBER_RE = re.compile(r"(\d{1,3})\D*$")

ARTWORK_STEM_RE = re.compile(
    r"^(?:poster|folder|cover|fanart|backdrop|background|banner|thumb|landscape|"
    r"clearart|clearlogo|logo|disc|discart|keyart|"
    r"season\d{1,2}-(?:poster|banner|fanart|landscape|thumb)|"
    r"season-(?:all|specials)-\w+)$",
    re.I,
)
IMAGE_ARTWORK_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".tbn", ".gif"}
PER_FILE_ARTWORK_SUFFIXES = ("-poster", "-thumb", "-fanart", "-landscape", "-banner")
POSTER_NAMES = ("poster", "folder", "cover")

SHOW_NFO_NAMES = ("tvshow.nfo",)
SEASON_NFO_NAMES = ("season.nfo",)
MOVIE_NFO_NAMES = ("movie.nfo",)


class LayoutKind(Enum):
    PLAIN = "plain"
    MOVIE = "movie"
    COLLECTION = "collection"


@dataclass
class DirectoryContents:
    """Regular files of one directory with their classified kinds."""

    directory: Path
    kinds: dict[Path, MediaKind]
    entry_count: int = 0

    def of_kind(self, kind: MediaKind) -> list[Path]:
        return sorted(p for p, k in self.kinds.items() if k == kind)

    @property
    def videos(self) -> list[Path]:
        return self.of_kind(MediaKind.VIDEO)

    @property
    def has_audio(self) -> bool:
        return any(k == MediaKind.AUDIO for k in self.kinds.values())

    def with_suffix(self, *suffixes: str) -> list[Path]:
        return sorted(p for p in self.kinds if p.suffix.lower() in suffixes)

    def find(self, *names: str) -> Path | None:
        """First file whose name matches one of ``names``, ignoring case."""
        by_name = {p.name.lower(): p for p in self.kinds}
        for name in names:
            if name.lower() in by_name:
                return by_name[name.lower()]
        return None

    def find_artwork(self, *stems: str) -> Path | None:
        for stem in stems:
            for path in sorted(self.kinds):
                if path.stem.lower() == stem.lower() and (
                    path.suffix.lower() in IMAGE_ARTWORK_EXTENSIONS
                ):
                    return path
        return None


@dataclass
class DirectoryLayout:
    kind: LayoutKind = LayoutKind.PLAIN
    hints: dict[Path, ExtractionHints] = field(default_factory=dict)
    consumed: set[Path] = field(default_factory=set)
    show_title: str | None = None
    season: int | None = None
    detector: str | None = None

    def hints_for(self, path: Path) -> ExtractionHints:
        return self.hints.setdefault(path, ExtractionHints())


class LayoutDetector(Protocol):
    """Decides whether a directory is a movie folder or a show season."""

    name: str

    def detect(self, contents: DirectoryContents) -> DirectoryLayout | None:
        """Return a layout, or ``None`` when this detector has no opinion."""


def season_from_directory(name: str) -> int | None:
    if SPECIALS_DIR_RE.match(name):
        return 0
    match = SEASON_DIR_RE.match(name) or SEASON_SHORT_RE.match(name)
    return int(match.group("number")) if match else None


def episode_token(stem: str) -> tuple[int, int] | None:
    """``(season, episode)`` from an ``S01E02`` or ``1x02`` token."""
    match = EPISODE_TOKEN_RE.search(stem) or ALT_EPISODE_TOKEN_RE.search(stem)
    if not match:
        return None
    return int(match.group("season")), int(match.group("episode"))


def clean_show_title(name: str) -> str:
    match = SERIES_YEAR_RE.match(name)
    title = match.group("title") if match else name
    return title.replace(".", " ").replace("_", " ").strip() or name


def _read_nfo(path: Path | None) -> NfoDocument | None:
    if path is None or not path.is_file():
        return None
    try:
        return parse_nfo(path)
    except (NfoParseError, OSError) as e:
        logger.warning("Ignoring unreadable NFO path=%s reason=%s", path, e)
        return None


def _episode_numbers(videos: list[Path], episodes: dict[Path, int]) -> dict[Path, int]:
    """Fill missing episode indices from trailing numbers, then sort position."""
    numbers = dict(episodes)
    for video in videos:
        if video in numbers:
            continue
        match = TRAILING_NUMBER_RE.search(video.stem)
        if match:
            numbers[video] = int(match.group(1))
    if len(numbers) < len(videos) or len(set(numbers.values())) < len(numbers):
        # Numbers are missing or clash; fall back to sorted order
        return {video: position for position, video in enumerate(sorted(videos), start=1)}
    return numbers


def _collection_layout(
    contents: DirectoryContents,
    detector: str,
    show_title: str,
    season: int,
    episodes: dict[Path, int],
) -> DirectoryLayout:
    layout = DirectoryLayout(
        kind=LayoutKind.COLLECTION, show_title=show_title, season=season, detector=detector
    )
    videos = contents.videos
    for video, episode in _episode_numbers(videos, episodes).items():
        hints = layout.hints_for(video)
        hints.show_title = show_title
        hints.season = season
        hints.episode = episode
    return layout


class NfoSeasonDetector:
    """Season folders identified by Kodi ``tvshow.nfo``/``season.nfo`` or episode NFOs."""

    name = "nfo"

    def detect(self, contents: DirectoryContents) -> DirectoryLayout | None:
        videos = contents.videos
        if not videos:
            return None

        directory = contents.directory
        show_nfo = _read_nfo(contents.find(*SHOW_NFO_NAMES))
        if show_nfo is None:
            show_nfo = _read_nfo(directory.parent / SHOW_NFO_NAMES[0])
        season_nfo = _read_nfo(contents.find(*SEASON_NFO_NAMES))

        episode_nfos: dict[Path, NfoDocument] = {}
        movie_nfos = 0
        for video in videos:
            doc = _read_nfo(contents.find(video.stem + ".nfo"))
            if doc is None:
                continue
            if doc.kind == "episodedetails":
                episode_nfos[video] = doc
            elif doc.kind == "movie":
                movie_nfos += 1

        if show_nfo is None and season_nfo is None and not episode_nfos:
            if movie_nfos > 1:
                logger.info(
                    "Ambiguous layout directory=%s reason=%s",
                    directory,
                    "several movie NFOs and no episode markers",
                )
            return None

        show_title = (
            (show_nfo.title if show_nfo else None)
            or (season_nfo.show_title if season_nfo else None)
            or next((d.show_title for d in episode_nfos.values() if d.show_title), None)
            or clean_show_title(
                directory.parent.name
                if season_from_directory(directory.name) is not None
                else directory.name
            )
        )
        season = season_nfo.season if season_nfo else None
        if season is None:
            season = season_from_directory(directory.name)
        if season is None:
            season = next((d.season for d in episode_nfos.values() if d.season is not None), 1)

        episodes = {v: d.episode for v, d in episode_nfos.items() if d.episode is not None}
        for video in videos:
            token = episode_token(video.stem)
            if video not in episodes and token:
                episodes[video] = token[1]
        return _collection_layout(contents, self.name, show_title, season, episodes)


class EpisodeNamingDetector:
    """Season folders recognised by directory name or ``SxxEyy`` file names."""

    name = "episode-naming"

    def detect(self, contents: DirectoryContents) -> DirectoryLayout | None:
        videos = contents.videos
        if not videos:
            return None

        directory = contents.directory
        dir_season = season_from_directory(directory.name)
        tokens = {v: t for v in videos if (t := episode_token(v.stem))}

        if dir_season is not None:
            if len(videos) == 1:
                logger.info(
                    "Ambiguous layout directory=%s reason=%s",
                    directory,
                    "season-named directory holds a single video",
                )
            show_title = clean_show_title(directory.parent.name)
            episodes = {v: t[1] for v, t in tokens.items()}
            return _collection_layout(contents, self.name, show_title, dir_season, episodes)

        if len(tokens) < 2:
            if tokens:
                logger.info(
                    "Ambiguous layout directory=%s reason=%s",
                    directory,
                    "single video with an episode marker",
                )
            return None

        seasons = {t[0] for t in tokens.values()}
        if len(seasons) > 1:
            logger.info(
                "Ambiguous layout directory=%s reason=%s seasons=%s",
                directory,
                "episode markers span several seasons",
                sorted(seasons),
            )
        season = min(seasons)
        episodes = {v: t[1] for v, t in tokens.items()}
        return _collection_layout(
            contents, self.name, clean_show_title(directory.name), season, episodes
        )


class MovieDirectoryDetector:
    """A folder holding exactly one video plus its NFO or artwork."""

    name = "movie"

    def __init__(self, max_entries: int = 13):
        self.max_entries = max_entries

    def detect(self, contents: DirectoryContents) -> DirectoryLayout | None:
        videos = contents.videos
        if len(videos) != 1:
            return None

        video = videos[0]
        nfos = contents.with_suffix(".nfo")
        nfo = contents.find(video.stem + ".nfo", *MOVIE_NFO_NAMES) or (
            nfos[0] if len(nfos) == 1 else None
        )
        poster = contents.find_artwork(f"{video.stem}-poster", *POSTER_NAMES)
        if nfo is None and poster is None:
            return None

        if contents.entry_count > self.max_entries:
            logger.info(
                "Ambiguous layout directory=%s reason=%s entries=%d",
                contents.directory,
                "too many entries for a movie directory",
                contents.entry_count,
            )
            return None

        layout = DirectoryLayout(kind=LayoutKind.MOVIE, detector=self.name)
        hints = layout.hints_for(video)
        hints.nfo_path = nfo
        hints.poster_path = poster
        return layout


def get_detector(name: str, max_movie_dir_entries: int = 13) -> LayoutDetector:
    """Get layout detector by name."""
    detectors: dict[str, LayoutDetector] = {
        "nfo": NfoSeasonDetector(),
        "episode-naming": EpisodeNamingDetector(),
        "movie": MovieDirectoryDetector(max_entries=max_movie_dir_entries),
    }
    if name not in detectors:
        raise ValueError(f"Unknown layout detector: {name}. Available: {list(detectors.keys())}")
    return detectors[name]


def _consumed_artwork(contents: DirectoryContents) -> set[Path]:
    """Artwork images that decorate the videos or audio in this directory."""
    videos = contents.videos
    if not videos and not contents.has_audio:
        return set()

    stems = {v.stem.lower() for v in videos}
    consumed = set()
    for path in contents.of_kind(MediaKind.IMAGE):
        if path.suffix.lower() not in IMAGE_ARTWORK_EXTENSIONS:
            continue
        stem = path.stem.lower()
        if ARTWORK_STEM_RE.match(stem):
            consumed.add(path)
            continue
        for suffix in PER_FILE_ARTWORK_SUFFIXES:
            if stem.endswith(suffix) and stem[: -len(suffix)] in stems:
                consumed.add(path)
                break
    return consumed


def detect_layout(contents: DirectoryContents, detectors: list[LayoutDetector]) -> DirectoryLayout:
    """Run the detector chain and attach per-video sidecar hints."""
    layout: DirectoryLayout | None = None
    for detector in detectors:
        verdict = detector.detect(contents)
        if verdict is None:
            continue
        if layout is None:
            layout = verdict
        elif verdict.kind != layout.kind:
            logger.info(
                "Ambiguous layout directory=%s chosen=%s:%s other=%s:%s",
                contents.directory,
                layout.detector,
                layout.kind.value,
                verdict.detector,
                verdict.kind.value,
            )

    if layout is None:
        layout = DirectoryLayout()

    layout.consumed = _consumed_artwork(contents)
    subtitles = contents.with_suffix(*SUBTITLE_EXTENSIONS)
    for video in contents.videos:
        hints = layout.hints_for(video)
        hints.subtitle_files = [s for s in subtitles if s.name.startswith(video.stem + ".")]
        if hints.nfo_path is None:
            hints.nfo_path = contents.find(video.stem + ".nfo")
    if layout.kind == LayoutKind.COLLECTION:
        logger.debug(
            "Collection directory=%s show=%s season=%s detector=%s",
            contents.directory,
            layout.show_title,
            layout.season,
            layout.detector,
        )
    return layout
