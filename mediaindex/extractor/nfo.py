"""Kodi-style NFO sidecar parsing.

NFO files are XML documents whose root is ``movie``, ``episodedetails``,
``tvshow`` or ``season``. Scrapers often append a plain URL after the
closing root tag, so anything after it is ignored.
"""

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from .parser import clean_text, normalize_language, parse_release_date, to_float, to_int, unique

logger = logging.getLogger(__name__)

_ROOT_TAG = re.compile(r"<([A-Za-z_][\w.-]*)[\s>/]")


class NfoParseError(ValueError):
    """Raised when an NFO file is not a readable XML document."""


@dataclass
class NfoDocument:
    kind: str
    title: str | None = None
    show_title: str | None = None
    plot: str | None = None
    directors: list[str] = field(default_factory=list)
    actors: list[str] = field(default_factory=list)
    release_date: date | None = None
    runtime: float | None = None
    width: int | None = None
    height: int | None = None
    audio_languages: list[str] = field(default_factory=list)
    subtitle_languages: list[str] = field(default_factory=list)
    season: int | None = None
    episode: int | None = None


def _text(root: ET.Element, path: str) -> str | None:
    element = root.find(path)
    return clean_text(element.text) if element is not None else None


def _texts(root: ET.Element, path: str) -> list[str]:
    values = [clean_text(element.text) for element in root.iterfind(path)]
    return unique([v for v in values if v])


def _parse_root(text: str, path: Path) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as first_error:
        body = re.sub(r"<\?.*?\?>|<!--.*?-->", "", text, flags=re.DOTALL)
        match = _ROOT_TAG.search(body)
        if not match:
            raise NfoParseError(f"{path}: no XML root element") from first_error
        closing = f"</{match.group(1)}>"
        end = text.rfind(closing)
        if end < 0:
            raise NfoParseError(f"{path}: {first_error}") from first_error
        try:
            return ET.fromstring(text[: end + len(closing)])
        except ET.ParseError as e:
            raise NfoParseError(f"{path}: {e}") from e


def parse_nfo(path: str | Path) -> NfoDocument:
    """Parse an NFO file.

    Raises:
        NfoParseError: the file holds no usable XML.
        OSError: the file cannot be read.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8", errors="replace").lstrip("\ufeff")
    root = _parse_root(text, path)

    doc = NfoDocument(kind=root.tag.lower())
    doc.title = _text(root, "title")
    doc.show_title = _text(root, "showtitle")
    doc.plot = _text(root, "plot") or _text(root, "outline")
    doc.directors = _texts(root, "director")
    doc.actors = _texts(root, "actor/name")

    for tag in ("premiered", "aired", "releasedate", "year"):
        doc.release_date = parse_release_date(_text(root, tag))
        if doc.release_date:
            break

    runtime_minutes = to_float(_text(root, "runtime"))
    if runtime_minutes:
        doc.runtime = runtime_minutes * 60

    details = root.find("fileinfo/streamdetails")
    if details is not None:
        doc.width = to_int(_text(details, "video/width"))
        doc.height = to_int(_text(details, "video/height"))
        stream_seconds = to_float(_text(details, "video/durationinseconds"))
        if stream_seconds:
            doc.runtime = stream_seconds
        doc.audio_languages = unique(
            [lang for lang in map(normalize_language, _texts(details, "audio/language")) if lang]
        )
        doc.subtitle_languages = unique(
            [
                lang
                for lang in map(normalize_language, _texts(details, "subtitle/language"))
                if lang
            ]
        )

    doc.season = to_int(_text(root, "season") or _text(root, "seasonnumber"))
    doc.episode = to_int(_text(root, "episode"))

    logger.debug("Parsed %s NFO %s", doc.kind, path)
    return doc
