"""
Byte-exact duplicate detection between a candidate and the previous capture.
"""

import pytest

from core.preprocess.deduplicator import Deduplicator, files_identical


@pytest.fixture
def write(tmp_path):
    def _write(name: str, data: bytes):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write


class TestFilesIdentical:

    def test_identical_multi_chunk_files(self, write):
        data = bytes(range(256)) * 80  # 20480 bytes, spans several 8 KiB chunks
        assert files_identical(write("a.png", data), write("b.png", data))

    def test_different_sizes(self, write):
        assert not files_identical(write("a.png", b"x" * 5000), write("b.png", b"x" * 4800))

    def test_same_size_difference_in_last_chunk(self, write):
        data = bytearray(b"\x00" * 20000)
        other = bytearray(data)
        other[-1] = 1
        assert not files_identical(write("a.png", bytes(data)), write("b.png", bytes(other)))

    def test_same_size_difference_in_first_byte(self, write):
        assert not files_identical(write("a.png", b"ab" * 10), write("b.png", b"bb" + b"ab" * 9))

    def test_missing_file_is_never_a_duplicate(self, write, tmp_path):
        existing = write("a.png", b"data")
        assert not files_identical(existing, tmp_path / "missing.png")
        assert not files_identical(tmp_path / "missing.png", existing)

    def test_empty_files_are_identical(self, write):
        assert files_identical(write("a.png", b""), write("b.png", b""))

    def test_small_chunk_size(self, write):
        data = b"screenshot" * 100
        assert files_identical(write("a.png", data), write("b.png", data), chunk_size=7)


class TestDeduplicator:

    def test_no_previous_capture(self, write):
        dedup = Deduplicator()
        assert not dedup.is_duplicate(write("a.png", b"data"), None)

    def test_file_is_not_its_own_duplicate(self, write):
        path = write("a.png", b"data")
        assert not Deduplicator().is_duplicate(path, path)

    def test_duplicate_of_previous(self, write):
        dedup = Deduplicator(chunk_size=4)
        assert dedup.is_duplicate(write("new.png", b"same bytes"), write("old.png", b"same bytes"))

    def test_accepts_string_paths(self, write):
        first = write("a.png", b"same")
        second = write("b.png", b"same")
        assert Deduplicator().is_duplicate(str(first), str(second))
