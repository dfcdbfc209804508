"""Tests for metadata readers and the extraction adapter."""

from datetime import date
from pathlib import Path

import pytest
from conftest import FakeReaders, touch, write_nfo

from mediaindex.database import Chapter, MediaKind
from mediaindex.errors import ExtractionFailed
from mediaindex.extractor import AudioTags, ExtractionHints, ProbeData
from mediaindex.extractor.adapter import normalize_audio, normalize_image, subtitle_language
from mediaindex.extractor.ffprobe import parse_probe_report
from mediaindex.extractor.nfo import NfoParseError, parse_nfo
from mediaindex.extractor.parser import (
    normalize_language,
    parse_exif_date,
    parse_release_date,
    to_float,
    to_int,
)

MOVIE_NFO = """<?xml version="1.0" encoding="UTF-8" standalone="yes" ?>
<movie>
    <title>The Film</title>
    <plot>Something happens.</plot>
    <runtime>95</runtime>
    <premiered>2005-06-01</premiered>
    <director>Jane Doe</director>
    <director>Jane Doe</director>
    <actor><name>First Actor</name><role>Lead</role></actor>
    <actor><name>Second Actor</name></actor>
    <fileinfo>
        <streamdetails>
            <video><width>1920</width><height>800</height></video>
            <audio><language>eng</language></audio>
            <audio><language>und</language></audio>
            <subtitle><language>ger</language></subtitle>
        </streamdetails>
    </fileinfo>
</movie>
https://www.themoviedb.org/movie/12345
"""


class TestParser:
    def test_parse_exif_date(self):
        assert parse_exif_date("2024:01:15 10:30:00") is not None
        assert parse_exif_date("0000:00:00 00:00:00") is None
        assert parse_exif_date("garbage") is None

    def test_parse_release_date(self):
        assert parse_release_date("2005-06-01") == date(2005, 6, 1)
        assert parse_release_date("1999") == date(1999, 1, 1)
        assert parse_release_date("2005-13-01") is None
        assert parse_release_date(None) is None

    def test_numbers(self):
        assert to_float("24000/1001") == pytest.approx(23.976, rel=1e-3)
        assert to_float("1/0") is None
        assert to_int("3/12") == 3
        assert to_int("n/a") is None

    def test_normalize_language(self):
        assert normalize_language(" EN_us ") == "en-us"
        assert normalize_language("und") is None


class TestNfo:
    def test_parses_movie_with_trailing_url(self, tmp_path: Path):
        doc = parse_nfo(write_nfo(tmp_path / "movie.nfo", MOVIE_NFO))

        assert doc.kind == "movie"
        assert doc.title == "The Film"
        assert doc.plot == "Something happens."
        assert doc.directors == ["Jane Doe"]
        assert doc.actors == ["First Actor", "Second Actor"]
        assert doc.release_date == date(2005, 6, 1)
        assert doc.runtime == 95 * 60
        assert (doc.width, doc.height) == (1920, 800)
        assert doc.audio_languages == ["eng"]
        assert doc.subtitle_languages == ["ger"]

    def test_parses_episode(self, tmp_path: Path):
        doc = parse_nfo(
            write_nfo(
                tmp_path / "ep.nfo",
                "\ufeff<episodedetails><title>Pilot</title><season>1</season>"
                "<episode>1</episode><aired>2010-09-01</aired></episodedetails>",
            )
        )
        assert doc.kind == "episodedetails"
        assert (doc.season, doc.episode) == (1, 1)
        assert doc.release_date == date(2010, 9, 1)

    def test_rejects_non_xml(self, tmp_path: Path):
        with pytest.raises(NfoParseError):
            parse_nfo(write_nfo(tmp_path / "bad.nfo", "https://www.imdb.com/title/tt0000001/"))


class TestProbeReport:
    def test_skips_cover_art_stream(self):
        report = {
            "format": {"duration": "5400.5", "tags": {"title": "Probe Title"}},
            "streams": [
                {"codec_type": "video", "width": 600, "height": 600, "disposition": {"attached_pic": 1}},
                {"codec_type": "video", "width": 1920, "height": 1080, "avg_frame_rate": "24000/1001"},
                {"codec_type": "audio", "tags": {"language": "eng"}},
                {"codec_type": "audio", "tags": {"language": "fre"}},
                {"codec_type": "subtitle", "tags": {"language": "und"}},
            ],
            "chapters": [
                {"start_time": "0.000000", "end_time": "300.0", "tags": {"title": "Opening"}},
                {"start_time": "300.0", "end_time": "300.0"},
            ],
        }

        data = parse_probe_report(report)

        assert data.title == "Probe Title"
        assert data.duration == 5400.5
        assert (data.width, data.height) == (1920, 1080)
        assert data.frame_rate == pytest.approx(23.976, rel=1e-3)
        assert data.audio_languages == ["eng", "fre"]
        assert data.subtitle_languages == []
        assert data.chapters == [
            Chapter(start=0.0, end=300.0, name="Opening"),
            Chapter(start=300.0, end=None, name=None),
        ]

    def test_empty_report(self):
        assert parse_probe_report({}) == ProbeData()


class TestNormalizers:
    def test_normalize_audio(self):
        tags = AudioTags(
            tags={"title": "Song", "artist": "Band X", "albumartist": "Band X", "tracknumber": "3/12"},
            duration=201.5,
        )
        title, description, details = normalize_audio(tags)
        assert title == "Song"
        assert description is None
        assert details.artist == "Band X"
        assert details.track_index == 3
        assert details.duration == 201.5

    def test_normalize_image_signs_gps_from_refs(self):
        meta = {
            "EXIF:DateTimeOriginal": "2024:01:15 10:30:00",
            "EXIF:LensModel": "  50mm F1.8  ",
            "EXIF:FNumber": 1.8,
            "EXIF:ExposureTime": "1/250",
            "EXIF:GPSLatitude": 33.86,
            "EXIF:GPSLatitudeRef": "S",
            "EXIF:GPSLongitude": 151.2,
            "EXIF:GPSLongitudeRef": "E",
            "EXIF:GPSAltitude": 12.0,
            "EXIF:GPSAltitudeRef": 1,
            "File:ImageWidth": 6000,
            "File:ImageHeight": 4000,
        }
        _, _, details = normalize_image(meta)
        assert details.taken_at == parse_exif_date("2024:01:15 10:30:00")
        assert details.lens_model == "50mm F1.8"
        assert details.exposure_time == pytest.approx(0.004)
        assert details.gps_latitude == -33.86
        assert details.gps_longitude == 151.2
        assert details.gps_altitude == -12.0
        assert (details.width, details.height) == (6000, 4000)

    def test_normalize_image_prefers_composite_gps(self):
        meta = {"Composite:GPSLatitude": -10.5, "EXIF:GPSLatitude": 10.5}
        _, _, details = normalize_image(meta)
        assert details.gps_latitude == -10.5

    def test_malformed_values_become_none(self):
        _, _, details = normalize_image({"EXIF:FNumber": "wide", "EXIF:DateTimeOriginal": "?"})
        assert details.f_number is None
        assert details.taken_at is None

    def test_subtitle_language(self):
        video = Path("/m/Movie.mkv")
        assert subtitle_language(video, Path("/m/Movie.en.forced.srt")) == "en"
        assert subtitle_language(video, Path("/m/Movie.srt")) is None
        assert subtitle_language(video, Path("/m/Movie.en.txt")) is None


class TestExtractionAdapter:
    def test_nfo_wins_over_probe(self, tmp_path: Path, readers: FakeReaders):
        video = touch(tmp_path / "film.mkv")
        write_nfo(tmp_path / "film.nfo", MOVIE_NFO)
        readers.probes["film.mkv"] = ProbeData(
            title="Probe Title",
            duration=1.0,
            frame_rate=25.0,
            subtitle_languages=["spa"],
            chapters=[Chapter(start=0.0, name="Start")],
        )

        fields = readers.adapter().extract(video, MediaKind.VIDEO)

        assert fields.title == "The Film"
        assert fields.description == "Something happens."
        assert fields.details.directors == ["Jane Doe"]
        assert fields.details.duration == 95 * 60
        assert fields.details.frame_rate == 25.0
        assert fields.details.subtitle_languages == ["ger", "spa"]
        assert [c.name for c in fields.chapters] == ["Start"]

    def test_probe_fills_gaps_without_nfo(self, tmp_path: Path, readers: FakeReaders):
        video = touch(tmp_path / "clip.mkv")
        touch(tmp_path / "clip.en.srt")
        readers.probes["clip.mkv"] = ProbeData(title="Probe Title", duration=42.0, width=640)

        fields = readers.adapter().extract(video, MediaKind.VIDEO)

        assert fields.title == "Probe Title"
        assert fields.details.duration == 42.0
        assert fields.details.width == 640
        assert fields.details.subtitle_languages == ["en"]

    def test_probe_failure_without_nfo_raises(self, tmp_path: Path, readers: FakeReaders):
        video = touch(tmp_path / "broken.mkv")
        readers.failing.add("broken.mkv")
        with pytest.raises(ExtractionFailed):
            readers.adapter().extract(video, MediaKind.VIDEO)

    def test_probe_failure_with_nfo_uses_nfo(self, tmp_path: Path, readers: FakeReaders):
        video = touch(tmp_path / "broken.mkv")
        write_nfo(tmp_path / "broken.nfo", MOVIE_NFO)
        readers.failing.add("broken.mkv")

        fields = readers.adapter().extract(video, MediaKind.VIDEO)

        assert fields.title == "The Film"
        assert fields.details.frame_rate is None

    def test_unreadable_nfo_is_ignored(self, tmp_path: Path, readers: FakeReaders):
        video = touch(tmp_path / "film.mkv")
        write_nfo(tmp_path / "film.nfo", "not xml at all")
        readers.probes["film.mkv"] = ProbeData(title="Probe Title")

        fields = readers.adapter().extract(video, MediaKind.VIDEO)

        assert fields.title == "Probe Title"

    def test_episode_hints(self, tmp_path: Path, readers: FakeReaders):
        video = touch(tmp_path / "e.mkv")
        hints = ExtractionHints(show_title="Show", season=1, episode=4, subtitle_files=[])

        fields = readers.adapter().extract(video, MediaKind.VIDEO, hints)

        assert (fields.season_index, fields.episode_index) == (1, 4)

    def test_video_poster_from_hints(self, tmp_path: Path, readers: FakeReaders):
        video = touch(tmp_path / "film.mkv")
        poster = touch(tmp_path / "poster.jpg")

        fields = readers.adapter().extract(video, MediaKind.VIDEO, ExtractionHints(poster_path=poster))

        assert fields.thumbnail == str(poster)

    def test_audio_folder_artwork(self, tmp_path: Path, readers: FakeReaders):
        song = touch(tmp_path / "song.mp3")
        folder = touch(tmp_path / "folder.jpg")
        readers.audio["song.mp3"] = AudioTags(tags={"title": "Song", "artist": "Band X"})

        fields = readers.adapter().extract(song, MediaKind.AUDIO)

        assert fields.title == "Song"
        assert fields.details.artist == "Band X"
        assert fields.thumbnail == str(folder)

    def test_image_reader(self, tmp_path: Path, readers: FakeReaders):
        photo = touch(tmp_path / "p.jpg")
        readers.images["p.jpg"] = {"EXIF:FNumber": 2.8, "XMP:Title": "Beach"}

        fields = readers.adapter().extract(photo, MediaKind.IMAGE)

        assert fields.title == "Beach"
        assert fields.details.f_number == 2.8

    def test_png_skips_exif_reader(self, tmp_path: Path, readers: FakeReaders):
        image = touch(tmp_path / "drawing.png")
        fields = readers.adapter().extract(image, MediaKind.IMAGE)
        assert fields.details is not None
        assert readers.calls == []
