"""Tests for media kind classification."""

from pathlib import Path

import pytest

from mediaindex.database import MediaKind
from mediaindex.scanner.classify import classify_extension, classify_file, sniff_kind


class TestClassifyExtension:
    @pytest.mark.parametrize(
        "extension,kind",
        [
            ("mkv", MediaKind.VIDEO),
            ("MP4", MediaKind.VIDEO),
            (".flac", MediaKind.AUDIO),
            ("m4b", MediaKind.AUDIO),
            ("jpg", MediaKind.IMAGE),
            ("cr2", MediaKind.IMAGE),
            ("nfo", MediaKind.UNKNOWN),
            ("srt", MediaKind.UNKNOWN),
        ],
    )
    def test_known_extensions(self, extension, kind):
        assert classify_extension(extension) == kind

    def test_unrecognised_extension(self):
        assert classify_extension("xyz") is None
        assert classify_extension(None) is None


class TestSniffKind:
    def test_jpeg(self):
        assert sniff_kind(b"\xff\xd8\xff\xe0\x00\x10JFIF") == MediaKind.IMAGE

    def test_wave_and_avi(self):
        assert sniff_kind(b"RIFF\x00\x00\x00\x00WAVEfmt ") == MediaKind.AUDIO
        assert sniff_kind(b"RIFF\x00\x00\x00\x00AVI LIST") == MediaKind.VIDEO

    def test_iso_media_brands(self):
        assert sniff_kind(b"\x00\x00\x00\x20ftypM4A \x00\x00") == MediaKind.AUDIO
        assert sniff_kind(b"\x00\x00\x00\x20ftypisom\x00\x00") == MediaKind.VIDEO
        assert sniff_kind(b"\x00\x00\x00\x20ftypheic\x00\x00") == MediaKind.IMAGE

    def test_matroska_and_id3(self):
        assert sniff_kind(b"\x1a\x45\xdf\xa3\x01\x00") == MediaKind.VIDEO
        assert sniff_kind(b"ID3\x04\x00\x00") == MediaKind.AUDIO

    def test_text_is_unknown(self):
        assert sniff_kind(b"hello world") == MediaKind.UNKNOWN


class TestClassifyFile:
    def test_extension_wins(self, tmp_path: Path):
        path = tmp_path / "song.mp3"
        path.write_bytes(b"not really audio")
        assert classify_file(path, "mp3") == MediaKind.AUDIO

    def test_sniffs_unknown_extension(self, tmp_path: Path):
        path = tmp_path / "download.bin"
        path.write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")
        assert classify_file(path, "bin") == MediaKind.IMAGE

    def test_unreadable_file_is_unknown(self, tmp_path: Path):
        assert classify_file(tmp_path / "missing", None) == MediaKind.UNKNOWN
