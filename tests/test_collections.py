"""Tests for directory layout detection."""

from pathlib import Path

from conftest import touch, write_nfo

from mediaindex.database import MediaKind
from mediaindex.scanner.classify import classify_extension
from mediaindex.scanner.collections import (
    DirectoryContents,
    LayoutKind,
    clean_show_title,
    detect_layout,
    episode_token,
    get_detector,
    season_from_directory,
)

DETECTORS = [get_detector("nfo"), get_detector("episode-naming"), get_detector("movie")]


def contents_of(directory: Path) -> DirectoryContents:
    kinds = {}
    for path in directory.iterdir():
        if path.is_file():
            kind = classify_extension(path.suffix)
            kinds[path] = kind if kind is not None else MediaKind.UNKNOWN
    return DirectoryContents(directory=directory, kinds=kinds, entry_count=len(kinds))


class TestNameParsing:
    def test_season_directories(self):
        assert season_from_directory("Season 1") == 1
        assert season_from_directory("season_02") == 2
        assert season_from_directory("S03") == 3
        assert season_from_directory("Specials") == 0
        assert season_from_directory("Extras") is None

    def test_episode_tokens(self):
        assert episode_token("Show.S01E02.1080p") == (1, 2)
        assert episode_token("show - 2x10 - title") == (2, 10)
        assert episode_token("Movie (1999)") is None

    def test_clean_show_title(self):
        assert clean_show_title("The Show (2010)") == "The Show"
        assert clean_show_title("The.Show") == "The Show"


class TestDetectLayout:
    def test_plain_directory(self, tmp_path: Path):
        touch(tmp_path / "a.mp3")
        touch(tmp_path / "b.jpg")

        layout = detect_layout(contents_of(tmp_path), DETECTORS)

        assert layout.kind == LayoutKind.PLAIN
        assert layout.consumed == set()

    def test_season_directory_by_name(self, tmp_path: Path):
        season = tmp_path / "My Show" / "Season 2"
        touch(season / "My Show - S02E01.mkv")
        touch(season / "My Show - S02E02.mkv")

        layout = detect_layout(contents_of(season), DETECTORS)

        assert layout.kind == LayoutKind.COLLECTION
        assert layout.show_title == "My Show"
        assert layout.season == 2
        episodes = {p.name: h.episode for p, h in layout.hints.items()}
        assert episodes == {"My Show - S02E01.mkv": 1, "My Show - S02E02.mkv": 2}

    def test_episode_tokens_without_season_directory(self, tmp_path: Path):
        show = tmp_path / "Other.Show"
        touch(show / "Other.Show.S01E01.mkv")
        touch(show / "Other.Show.S01E02.mkv")

        layout = detect_layout(contents_of(show), DETECTORS)

        assert layout.kind == LayoutKind.COLLECTION
        assert layout.show_title == "Other Show"
        assert layout.season == 1

    def test_single_episode_token_is_not_a_collection(self, tmp_path: Path):
        touch(tmp_path / "Pilot.S01E01.mkv")
        layout = detect_layout(contents_of(tmp_path), DETECTORS)
        assert layout.kind == LayoutKind.PLAIN

    def test_tvshow_nfo_in_parent(self, tmp_path: Path):
        show = tmp_path / "Show"
        season = show / "Disc A"
        touch(season / "first.mkv")
        touch(season / "second.mkv")
        write_nfo(show / "tvshow.nfo", "<tvshow><title>Proper Title</title></tvshow>")

        layout = detect_layout(contents_of(season), DETECTORS)

        assert layout.kind == LayoutKind.COLLECTION
        assert layout.detector == "nfo"
        assert layout.show_title == "Proper Title"
        assert layout.season == 1
        assert {h.episode for h in layout.hints.values()} == {1, 2}

    def test_episode_nfo_numbers(self, tmp_path: Path):
        touch(tmp_path / "a.mkv")
        touch(tmp_path / "b.mkv")
        write_nfo(
            tmp_path / "a.nfo",
            "<episodedetails><title>Later</title><showtitle>Show</showtitle>"
            "<season>3</season><episode>7</episode></episodedetails>",
        )
        write_nfo(
            tmp_path / "b.nfo",
            "<episodedetails><title>Earlier</title><season>3</season>"
            "<episode>6</episode></episodedetails>",
        )

        layout = detect_layout(contents_of(tmp_path), DETECTORS)

        assert layout.show_title == "Show"
        assert layout.season == 3
        assert layout.hints[tmp_path / "a.mkv"].episode == 7
        assert layout.hints[tmp_path / "b.mkv"].episode == 6

    def test_movie_directory_consumes_artwork(self, tmp_path: Path):
        touch(tmp_path / "Movie (2005).mkv")
        touch(tmp_path / "poster.jpg")
        touch(tmp_path / "fanart.jpg")
        touch(tmp_path / "Movie (2005).en.srt")
        write_nfo(tmp_path / "movie.nfo", "<movie><title>Movie</title></movie>")

        layout = detect_layout(contents_of(tmp_path), DETECTORS)

        video = tmp_path / "Movie (2005).mkv"
        assert layout.kind == LayoutKind.MOVIE
        assert layout.consumed == {tmp_path / "poster.jpg", tmp_path / "fanart.jpg"}
        assert layout.hints[video].poster_path == tmp_path / "poster.jpg"
        assert layout.hints[video].nfo_path == tmp_path / "movie.nfo"
        assert layout.hints[video].subtitle_files == [tmp_path / "Movie (2005).en.srt"]

    def test_crowded_directory_is_not_a_movie(self, tmp_path: Path):
        touch(tmp_path / "clip.mkv")
        touch(tmp_path / "poster.jpg")
        for i in range(20):
            touch(tmp_path / f"note{i}.txt")

        layout = detect_layout(contents_of(tmp_path), DETECTORS)

        assert layout.kind == LayoutKind.PLAIN

    def test_photos_alone_are_not_artwork(self, tmp_path: Path):
        touch(tmp_path / "cover.jpg")
        touch(tmp_path / "holiday.jpg")
        layout = detect_layout(contents_of(tmp_path), DETECTORS)
        assert layout.consumed == set()
