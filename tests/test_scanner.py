"""Tests for scanner module."""

import os
import shutil
import threading
from pathlib import Path

import pytest
from conftest import FakeReaders, touch, write_nfo

from mediaindex.database import MediaKind, Store
from mediaindex.extractor import AudioTags, ProbeData
from mediaindex.scanner import ScanPhase, ScanState
from mediaindex.scanner.scanner import Scanner

MOVIE_NFO = """<movie>
    <title>Directed Film</title>
    <director>Jane Doe</director>
    <premiered>2005-06-01</premiered>
</movie>"""

SEASON_NFO = """<season>
    <showtitle>Show</showtitle>
    <seasonnumber>2</seasonnumber>
</season>"""


def scanner_for(store: Store, readers: FakeReaders, **kwargs) -> Scanner:
    return Scanner(store, readers.adapter(), **kwargs)


class TestScanner:
    """Tests for Scanner class."""

    def test_scan_not_a_directory(self, store: Store, readers: FakeReaders, root: Path):
        with pytest.raises(NotADirectoryError):
            scanner_for(store, readers).scan(root / "missing")

    def test_indexes_mixed_directory(self, store: Store, readers: FakeReaders, root: Path):
        library = root / "library"
        touch(library / "movie.mkv")
        write_nfo(library / "movie.nfo", MOVIE_NFO)
        touch(library / "song.mp3")
        touch(library / "notes.txt")
        readers.audio["song.mp3"] = AudioTags(tags={"title": "Tune", "artist": "Band X"})

        stats = scanner_for(store, readers).scan(library)

        assert stats.files_indexed == 2
        movie = store.get_entry(library / "movie.mkv")
        song = store.get_entry(library / "song.mp3")
        assert movie.kind == MediaKind.VIDEO
        assert movie.title == "Directed Film"
        assert movie.video.directors == ["Jane Doe"]
        assert song.audio.artist == "Band X"
        assert store.get_entry(library / "notes.txt") is None
        assert store.get_entry(library / "movie.nfo") is None

    def test_rescan_is_idempotent(self, store: Store, readers: FakeReaders, root: Path):
        touch(root / "a.mp3")
        touch(root / "b.mp3")
        scanner = scanner_for(store, readers)

        scanner.scan(root)
        before = {e.path: (e.id, e.modified_at) for e in store.list_entries_in(root)}
        readers.calls.clear()
        stats = scanner.scan(root)
        after = {e.path: (e.id, e.modified_at) for e in store.list_entries_in(root)}

        assert before == after
        assert readers.calls == []
        assert stats.files_unchanged == 2

    def test_changed_file_is_reextracted(self, store: Store, readers: FakeReaders, root: Path):
        song = touch(root / "a.mp3")
        scanner = scanner_for(store, readers)
        scanner.scan(root)
        entry_id = store.get_entry(song).id

        readers.audio["a.mp3"] = AudioTags(tags={"artist": "Renamed"})
        stat = song.stat()
        os.utime(song, (stat.st_atime, stat.st_mtime + 10))
        scanner.scan(root)

        entry = store.get_entry(song)
        assert entry.id == entry_id
        assert entry.audio.artist == "Renamed"

    def test_removes_deleted_files(self, store: Store, readers: FakeReaders, root: Path):
        touch(root / "a.mp3")
        touch(root / "b.mp3")
        scanner = scanner_for(store, readers)
        scanner.scan(root)

        (root / "b.mp3").unlink()
        stats = scanner.scan(root)

        assert [Path(e.path).name for e in store.list_entries_in(root)] == ["a.mp3"]
        assert stats.entries_removed == 1

    def test_removes_vanished_subdirectories(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        touch(root / "keep.mp3")
        touch(root / "gone" / "deep" / "x.mp3")
        scanner = scanner_for(store, readers)
        scanner.scan(root)
        assert len(store.list_entries_in(root, recursive=True)) == 2

        shutil.rmtree(root / "gone")
        scanner.scan(root)

        assert [Path(e.path).name for e in store.list_entries_in(root, recursive=True)] == [
            "keep.mp3"
        ]

    def test_non_recursive_scan_leaves_subdirectories(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        touch(root / "sub" / "x.mp3")
        scanner = scanner_for(store, readers)
        scanner.scan(root)

        scanner.scan(root, recursive=False)

        assert store.get_entry(root / "sub" / "x.mp3") is not None

    def test_extraction_failure_is_recorded(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        touch(root / "broken.mp3")
        touch(root / "good.mp3")
        readers.failing.add("broken.mp3")

        stats = scanner_for(store, readers).scan(root)

        broken = store.get_entry(root / "broken.mp3")
        assert broken.extraction_error == "corrupt container"
        assert broken.audio is None
        assert stats.files_failed == 1
        assert stats.files_indexed == 1

    def test_show_season_becomes_collection(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        season = root / "Show" / "Season 1"
        touch(season / "Show.S01E02.mkv")
        touch(season / "Show.S01E01.mkv")
        readers.probes["Show.S01E01.mkv"] = ProbeData(duration=1500.0)

        scanner_for(store, readers).scan(root)

        collections = store.list_collections()
        assert len(collections) == 1
        assert collections[0].show_title == "Show"
        assert collections[0].season_number == 1
        members = store.collection_members(collections[0].id)
        assert [(m.season_index, m.episode_index) for m in members] == [(1, 1), (1, 2)]
        assert Path(members[0].path).name == "Show.S01E01.mkv"

    def test_empty_collection_is_pruned(self, store: Store, readers: FakeReaders, root: Path):
        season = root / "Show" / "Season 1"
        touch(season / "Show.S01E01.mkv")
        touch(season / "Show.S01E02.mkv")
        scanner = scanner_for(store, readers)
        scanner.scan(root)

        shutil.rmtree(root / "Show")
        scanner.scan(root)

        assert store.list_collections() == []

    def test_season_nfo_groups_episodes(self, store: Store, readers: FakeReaders, root: Path):
        disc = root / "Show" / "Disc"
        touch(disc / "ep1.mkv")
        touch(disc / "ep2.mkv")
        write_nfo(disc / "season.nfo", SEASON_NFO)

        scanner_for(store, readers).scan(root)

        collections = store.list_collections()
        assert [(c.show_title, c.season_number) for c in collections] == [("Show", 2)]
        members = store.collection_members(collections[0].id)
        assert [Path(m.path).name for m in members] == ["ep1.mkv", "ep2.mkv"]
        assert [(m.season_index, m.episode_index) for m in members] == [(2, 1), (2, 2)]

    def test_rescan_groups_unchanged_episodes(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        show = root / "MyShow"
        touch(show / "pilot.mkv")
        touch(show / "second.mkv")
        scanner = scanner_for(store, readers)
        scanner.scan(root)
        ids = {e.path: e.id for e in store.list_entries_in(show)}
        assert store.list_collections() == []

        write_nfo(show / "season.nfo", SEASON_NFO)
        readers.calls.clear()
        scanner.scan(root)

        collections = store.list_collections()
        assert len(collections) == 1
        members = store.collection_members(collections[0].id)
        assert {m.path: m.id for m in members} == ids
        assert [(m.season_index, m.episode_index) for m in members] == [(2, 1), (2, 2)]
        assert readers.calls == []

    def test_cancel_before_first_episode_leaves_no_collection(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        season = root / "Show" / "Season 1"
        touch(season / "0.jpg")
        touch(season / "Show.S01E01.mkv")
        touch(season / "Show.S01E02.mkv")
        cancel = threading.Event()
        readers.on_call = lambda path: cancel.set()

        stats = scanner_for(store, readers, cancel_event=cancel).scan(root)

        assert stats.cancelled
        assert readers.calls == ["0.jpg"]
        assert store.list_collections() == []

    def test_rescan_keeps_tags_in_case_variant_sibling(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        keep = touch(root / "old" / "keep.mp3")
        touch(root / "Old" / "gone.mp3")
        if (root / "old").samefile(root / "Old"):
            pytest.skip("case-insensitive filesystem")
        scanner = scanner_for(store, readers)
        scanner.scan(root)
        entry_id = store.get_entry(keep).id
        tag_id = store.create_tag("favourite")
        store.assign_tag(tag_id, entry_id)

        shutil.rmtree(root / "Old")
        scanner.scan(root)

        assert store.get_entry(keep).id == entry_id
        assert [e.id for e in store.entries_for_tag(tag_id)] == [entry_id]
        assert store.get_entry(root / "Old" / "gone.mp3") is None

    def test_movie_directory_artwork(self, store: Store, readers: FakeReaders, root: Path):
        movie_dir = root / "Movie (2005)"
        touch(movie_dir / "Movie (2005).mkv")
        write_nfo(movie_dir / "movie.nfo", MOVIE_NFO)
        touch(movie_dir / "poster.jpg")
        touch(movie_dir / "fanart.jpg")

        scanner_for(store, readers).scan(root)

        entries = store.list_entries_in(movie_dir)
        assert [Path(e.path).name for e in entries] == ["Movie (2005).mkv"]
        assert entries[0].thumbnail == str(movie_dir / "poster.jpg")
        assert entries[0].collection_id is None
        assert "poster.jpg" not in readers.calls

    def test_cancel_keeps_committed_entries(
        self, store: Store, readers: FakeReaders, root: Path
    ):
        for name in ["a.mp3", "b.mp3", "c.mp3"]:
            touch(root / name)
        scanner_for(store, readers).scan(root)
        (root / "c.mp3").unlink()

        cancel = threading.Event()
        state = ScanState()
        readers.calls.clear()
        readers.on_call = lambda path: cancel.set()
        scanner = scanner_for(store, readers, state=state, cancel_event=cancel)
        for name in ["a.mp3", "b.mp3"]:
            path = root / name
            stat = path.stat()
            os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        stats = scanner.scan(root)

        assert stats.cancelled
        assert state.snapshot().phase == ScanPhase.CANCELLED
        assert readers.calls == ["a.mp3"]
        # Reconciliation was skipped, so the stale entry is still present
        assert store.get_entry(root / "c.mp3") is not None

    def test_index_single(self, store: Store, readers: FakeReaders, root: Path):
        song = touch(root / "one.mp3")
        touch(root / "readme.txt")
        scanner = scanner_for(store, readers)

        entry_id = scanner.index_single(song)

        assert store.get_entry(song).id == entry_id
        assert scanner.index_single(root / "readme.txt") is None
