import io
import zipfile

import pytest

from zipkit import ZipCompression, ZipReader, ZipWriter
from zipkit.errors import ZipFormatError


def test_append_to_path(tmp_path):
    path = tmp_path / "app.zip"
    with ZipWriter(path) as w:
        w.write_entry("a.txt", b"alpha")
    original = path.read_bytes()

    with ZipWriter(path, append=True) as w:
        assert w.get_entry_names() == ["a.txt"]
        w.write_entry("b.txt", b"beta")

    with ZipReader(path) as z:
        assert z.get_entry_names() == ["a.txt", "b.txt"]
        assert z.read("a.txt") == b"alpha"
        assert z.read("b.txt") == b"beta"
        assert z.open_entry("b.txt").entry.local_header_offset == len(original)


def test_adopted_bytes_are_untouched(sample_path):
    original = sample_path.read_bytes()
    with ZipWriter(sample_path, append=True) as w:
        w.write_entry("new.txt", b"new", alignment=4096)

    appended = sample_path.read_bytes()
    assert appended[: len(original)] == original
    with ZipReader(sample_path) as z:
        assert z.get_entry_count() == 6
        assert z.open_entry("new.txt").data_offset % 4096 == 0
        assert z.open_entry("lib/arm64/libfoo.so").data_offset % 4096 == 0
        assert z.read("data.bin").startswith(b"\x00\x01\x02\x03")


def test_adopted_records_keep_their_metadata(sample_path, fixed_time):
    with ZipReader(sample_path) as z:
        before = z.entries

    with ZipWriter(sample_path, append=True) as w:
        w.write_entry("extra.txt", b"extra")

    with ZipReader(sample_path) as z:
        after = z.entries[: len(before)]
        assert after == before
        assert z.open_entry("lib/arm64/libfoo.so").last_modified == fixed_time


def test_append_keeps_comment(sample_path):
    with ZipWriter(sample_path, append=True) as w:
        assert w.get_comment() == b"sample archive"
        w.write_entry("extra.txt", b"extra")
    with ZipReader(sample_path) as z:
        assert z.get_raw_comment() == b"sample archive"


def test_append_to_bytes(sample_bytes, sample_contents):
    w = ZipWriter(sample_bytes)
    w.write_entry("more.txt", b"more", ZipCompression.BZIP2)
    data = w.to_bytes()

    assert data[: len(sample_bytes)] == sample_bytes
    with ZipReader(data) as z:
        assert z.get_entry_names() == list(sample_contents) + ["more.txt"]
        for name, content in sample_contents.items():
            assert z.read(name) == content
        assert z.read("more.txt") == b"more"


def test_empty_bytes_start_a_new_archive():
    w = ZipWriter(b"")
    assert w.get_entry_count() == 0
    w.write_entry("a.txt", b"a")
    with ZipReader(w.to_bytes()) as z:
        assert z.get_entry_names() == ["a.txt"]


def test_append_to_empty_file(tmp_path):
    path = tmp_path / "empty.zip"
    path.write_bytes(b"")
    with ZipWriter(path, append=True) as w:
        w.write_entry("a.txt", b"a")
    with ZipReader(path) as z:
        assert z.read("a.txt") == b"a"


def test_append_to_caller_stream(sample_bytes):
    stream = io.BytesIO(sample_bytes)
    with ZipWriter(stream, append=True) as w:
        w.write_entry("more.txt", b"more")
    assert not stream.closed
    with ZipReader(stream) as z:
        assert z.read("more.txt") == b"more"
        assert z.read("a.txt") == b"hello"


def test_append_to_stdlib_archive(tmp_path):
    path = tmp_path / "std.zip"
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("std.txt", b"from zipfile " * 10)

    with ZipWriter(path, append=True) as w:
        w.write_entry("ours.txt", b"from zipkit", ZipCompression.BZIP2)

    with zipfile.ZipFile(path) as zf:
        assert zf.testzip() is None
        assert zf.read("std.txt") == b"from zipfile " * 10
        assert zf.read("ours.txt") == b"from zipkit"


def test_append_to_garbage(tmp_path):
    path = tmp_path / "garbage.zip"
    path.write_bytes(b"not an archive at all" * 10)
    with pytest.raises(ZipFormatError):
        ZipWriter(path, append=True)
    assert path.read_bytes() == b"not an archive at all" * 10

    with pytest.raises(ZipFormatError):
        ZipWriter(b"not an archive at all" * 10)


def test_append_to_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ZipWriter(tmp_path / "missing.zip", append=True)


def test_comment_edit_reuses_directory_slot(sample_path):
    size = sample_path.stat().st_size
    with ZipReader(sample_path) as z:
        cd_offset = z.central_directory_offset

    with ZipWriter(sample_path, append=True) as w:
        w.set_comment("v2")
    assert sample_path.stat().st_size == size

    longer = "a comment longer than the one before"
    with ZipWriter(sample_path, append=True) as w:
        w.set_comment(longer)
    grown = sample_path.stat().st_size
    assert grown == size + len(longer) - len("sample archive")

    for _ in range(3):
        with ZipWriter(sample_path, append=True) as w:
            w.set_comment(longer)
    assert sample_path.stat().st_size == grown

    with ZipReader(sample_path) as z:
        assert z.central_directory_offset == cd_offset
        assert z.get_raw_comment() == longer.encode()
        assert z.get_entry_count() == 5
        assert z.read("a.txt") == b"hello"


def test_untouched_reopen_is_byte_identical(sample_path):
    original = sample_path.read_bytes()
    with ZipWriter(sample_path, append=True):
        pass
    assert sample_path.read_bytes() == original
