"""Shared fixtures: a fresh store and extraction adapters with fake readers."""

from collections.abc import Callable
from pathlib import Path

import pytest

from mediaindex.database import Database, Store
from mediaindex.errors import ExtractionFailed
from mediaindex.extractor import AudioTags, ExtractionAdapter, ProbeData


@pytest.fixture
def db(tmp_path: Path):
    with Database(tmp_path / "index.db") as database:
        yield database


@pytest.fixture
def store(db: Database) -> Store:
    return Store(db)


class FakeReaders:
    """Metadata readers keyed by file name, recording every call."""

    def __init__(self) -> None:
        self.audio: dict[str, AudioTags] = {}
        self.images: dict[str, dict] = {}
        self.probes: dict[str, ProbeData] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.on_call: Callable[[Path], None] | None = None

    def _record(self, path: Path) -> None:
        self.calls.append(path.name)
        if self.on_call is not None:
            self.on_call(path)
        if path.name in self.failing:
            raise ExtractionFailed(path, "corrupt container")

    def read_audio(self, path: Path) -> AudioTags:
        self._record(path)
        return self.audio.get(path.name, AudioTags())

    def read_image(self, path: Path) -> dict:
        self._record(path)
        return self.images.get(path.name, {})

    def probe(self, path: Path) -> ProbeData:
        self._record(path)
        return self.probes.get(path.name, ProbeData())

    def adapter(self) -> ExtractionAdapter:
        return ExtractionAdapter(
            audio_reader=self.read_audio,
            image_reader=self.read_image,
            video_probe=self.probe,
        )


@pytest.fixture
def readers() -> FakeReaders:
    return FakeReaders()


def write_nfo(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    return path


def touch(path: Path, data: bytes = b"") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """``tmp_path`` with symlinks resolved, matching the paths the scanner stores."""
    return tmp_path.resolve()
