"""Tests for the library facade and the background scan job."""

import threading
from pathlib import Path

import pytest
from conftest import FakeReaders, touch

from mediaindex.config import Config, ThumbnailConfig
from mediaindex.database import MediaKind
from mediaindex.errors import DatabaseBusy, NotFound
from mediaindex.library import MediaLibrary
from mediaindex.scanner import ScanOutcome, ScanPhase
from mediaindex.search import Predicate


@pytest.fixture
def config(root: Path) -> Config:
    return Config(
        database_path=root / "data" / "index.db",
        thumbnails=ThumbnailConfig(directory=root / "data" / "thumbs", generate=False),
    )


@pytest.fixture
def media(root: Path) -> Path:
    directory = root / "media"
    touch(directory / "a.mp3")
    touch(directory / "b.mp3")
    touch(directory / "sub" / "c.mp3")
    return directory


class TestMediaLibrary:
    def test_scan_and_browse(self, config: Config, readers: FakeReaders, media: Path):
        with MediaLibrary(config, readers.adapter()) as library:
            library.start_scan(media)
            assert library.wait_for_scan(timeout=30)

            progress = library.scan_progress()
            assert progress.phase == ScanPhase.IDLE
            assert progress.last_outcome == ScanOutcome.COMPLETED
            assert progress.files_seen == 3
            assert [Path(e.path).name for e in library.list_entries_in(media)] == [
                "a.mp3",
                "b.mp3",
            ]
            assert len(library.list_entries_in(media, recursive=True)) == 3
            assert library.counts_by_kind() == {MediaKind.AUDIO: 3}

    def test_scan_missing_directory(self, config: Config, readers: FakeReaders, root: Path):
        with MediaLibrary(config, readers.adapter()) as library:
            with pytest.raises(NotADirectoryError):
                library.start_scan(root / "nowhere")
            assert not library.scan_progress().active

    def test_busy_while_scanning(self, config: Config, readers: FakeReaders, media: Path):
        entered = threading.Event()
        release = threading.Event()

        def block(path: Path) -> None:
            entered.set()
            release.wait(timeout=30)

        readers.on_call = block
        with MediaLibrary(config, readers.adapter()) as library:
            tag_id = library.tags.create_tag("favourites")
            library.start_scan(media)
            assert entered.wait(timeout=30)

            try:
                with pytest.raises(DatabaseBusy):
                    library.start_scan(media)
                with pytest.raises(DatabaseBusy):
                    library.tags.create_tag("other")
                with pytest.raises(DatabaseBusy):
                    library.index_file(media / "a.mp3")
                assert library.scan_progress().active
                assert library.tags.get_tag(tag_id).name == "favourites"
                assert library.search.search(["audio"]).total >= 0
            finally:
                release.set()

            assert library.wait_for_scan(timeout=30)
            assert library.scan_progress().last_outcome == ScanOutcome.COMPLETED
            library.tags.create_tag("other")

    def test_progress_subscription(self, config: Config, readers: FakeReaders, media: Path):
        seen = []
        with MediaLibrary(config, readers.adapter()) as library:
            unsubscribe = library.subscribe(lambda progress: seen.append(progress.phase))
            library.start_scan(media)
            library.wait_for_scan(timeout=30)
            unsubscribe()

        assert ScanPhase.EXTRACTING in seen
        assert ScanPhase.RECONCILING in seen
        assert seen[-1] == ScanPhase.IDLE

    def test_cancel_scan(self, config: Config, readers: FakeReaders, media: Path):
        with MediaLibrary(config, readers.adapter()) as library:
            readers.on_call = lambda path: library.cancel_scan()
            library.start_scan(media)
            assert library.wait_for_scan(timeout=30)

            assert library.scan_progress().last_outcome == ScanOutcome.CANCELLED
            assert len(library.list_entries_in(media, recursive=True)) == 1

    def test_index_file_and_edit(self, config: Config, readers: FakeReaders, media: Path):
        with MediaLibrary(config, readers.adapter()) as library:
            entry = library.index_file(media / "a.mp3")
            assert entry is not None

            entry.title = "Edited"
            library.update_entry(entry)
            result = library.search.search(["audio"], [Predicate.equals("title", "edited")])
            assert [e.id for e in result] == [entry.id]

            assert library.remove_entry(media / "a.mp3")
            with pytest.raises(NotFound):
                library.update_entry(entry)

    def test_index_file_ignores_non_media(self, config: Config, readers: FakeReaders, root: Path):
        notes = touch(root / "notes.txt", b"hello")
        with MediaLibrary(config, readers.adapter()) as library:
            assert library.index_file(notes) is None
