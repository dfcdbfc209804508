"""ffprobe wrapper for video stream, duration and chapter metadata."""

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from mediaindex.database.models import Chapter
from mediaindex.errors import ExtractionFailed

from .parser import clean_text, get_first_value, normalize_language, to_float, to_int

logger = logging.getLogger(__name__)

FFPROBE_ARGS = [
    "-v",
    "error",
    "-show_format",
    "-show_streams",
    "-show_chapters",
    "-of",
    "json",
]


@dataclass
class ProbeData:
    """The parts of an ffprobe report the index keeps."""

    title: str | None = None
    duration: float | None = None
    width: int | None = None
    height: int | None = None
    frame_rate: float | None = None
    audio_languages: list[str] = field(default_factory=list)
    subtitle_languages: list[str] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)


def run_ffprobe(path: str | Path, timeout: float = 30.0) -> dict:
    """Execute ffprobe for ``path`` and return its parsed JSON report.

    Raises:
        ExtractionFailed: ffprobe is missing, times out, or cannot read the file.
    """
    executable = shutil.which("ffprobe")
    if not executable:
        raise ExtractionFailed(path, "ffprobe not found")

    cmd = [executable, *FFPROBE_ARGS, str(path)]
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
            timeout=max(1.0, float(timeout)),
        )
    except subprocess.TimeoutExpired as e:
        raise ExtractionFailed(path, "ffprobe timed out") from e
    except OSError as e:
        raise ExtractionFailed(path, f"ffprobe failed: {e}") from e

    if proc.returncode != 0:
        message = proc.stderr.strip() or proc.stdout.strip() or "ffprobe error"
        raise ExtractionFailed(path, message)

    try:
        report = json.loads(proc.stdout or "{}")
    except json.JSONDecodeError as e:
        raise ExtractionFailed(path, f"invalid ffprobe output: {e}") from e

    return report if isinstance(report, dict) else {}


def parse_probe_report(report: dict) -> ProbeData:
    """Reduce an ffprobe JSON report to :class:`ProbeData`."""
    data = ProbeData()

    fmt = report.get("format") if isinstance(report.get("format"), dict) else {}
    data.duration = to_float(fmt.get("duration"))
    format_tags = fmt.get("tags") if isinstance(fmt.get("tags"), dict) else {}
    data.title = clean_text(get_first_value(format_tags, "title", "TITLE"))

    streams = report.get("streams") if isinstance(report.get("streams"), list) else []
    for stream in streams:
        if not isinstance(stream, dict):
            continue
        codec_type = str(stream.get("codec_type") or "").lower()
        disposition = stream.get("disposition") or {}
        tags = stream.get("tags") if isinstance(stream.get("tags"), dict) else {}
        language = normalize_language(get_first_value(tags, "language", "LANGUAGE", "lang"))

        if codec_type == "video":
            # Cover art is carried as a single-frame video stream
            if disposition.get("attached_pic") or data.width is not None:
                continue
            data.width = to_int(stream.get("width"))
            data.height = to_int(stream.get("height"))
            data.frame_rate = to_float(
                get_first_value(stream, "avg_frame_rate", "r_frame_rate")
            )
            if data.frame_rate == 0:
                data.frame_rate = None
            if data.duration is None:
                data.duration = to_float(stream.get("duration"))
        elif codec_type == "audio" and language:
            data.audio_languages.append(language)
        elif codec_type == "subtitle" and language:
            data.subtitle_languages.append(language)

    chapters = report.get("chapters") if isinstance(report.get("chapters"), list) else []
    for chapter in chapters:
        if not isinstance(chapter, dict):
            continue
        start = to_float(chapter.get("start_time"))
        if start is None:
            continue
        end = to_float(chapter.get("end_time"))
        chapter_tags = chapter.get("tags") if isinstance(chapter.get("tags"), dict) else {}
        data.chapters.append(
            Chapter(
                start=start,
                end=end if end is not None and end > start else None,
                name=clean_text(get_first_value(chapter_tags, "title", "TITLE")),
            )
        )

    return data


def probe_video(path: str | Path, timeout: float = 30.0) -> ProbeData:
    """Probe a video file. Raises :class:`ExtractionFailed` if it cannot be read."""
    return parse_probe_report(run_ffprobe(path, timeout=timeout))
