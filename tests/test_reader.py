import calendar
import io
import struct
import zipfile
import zlib

import pytest

from zipkit import ZipCompression, ZipReader, ZipWriter
from zipkit.errors import (
    EntryNotFound,
    IntegrityMismatch,
    MalformedArchive,
    UnsupportedCompression,
    UseAfterClose,
    ZipError,
    ZipFormatError,
    ZipUnsupportedFeature,
)


def _eocd_position(data: bytes) -> int:
    return data.rfind(b"PK\x05\x06")


def test_single_deflate_entry():
    w = ZipWriter()
    w.write_entry("a.txt", b"hello", ZipCompression.DEFLATE)
    data = w.to_bytes()

    with ZipReader(data) as z:
        assert z.get_entry_count() == 1
        handle = z.open_entry("a.txt")
        assert handle.name == "a.txt"
        assert handle.index == 0
        assert handle.size == 5
        assert handle.crc32 == 0x3610A686
        assert handle.compression == ZipCompression.DEFLATE
        assert handle.read() == b"hello"


def test_sample_archive_contents(sample_bytes, sample_contents):
    with ZipReader(sample_bytes) as z:
        assert z.get_entry_names() == list(sample_contents)
        for name, content in sample_contents.items():
            assert z.open_entry(name).read() == content
        assert z.get_raw_comment() == b"sample archive"


def test_open_from_path(sample_path, sample_contents):
    with ZipReader(sample_path) as z:
        assert len(z) == len(sample_contents)
        assert z.read("a.txt") == b"hello"
    with ZipReader(str(sample_path)) as z:
        assert z.read(0) == b"hello"


def test_open_from_borrowed_stream(sample_bytes):
    stream = io.BytesIO(sample_bytes)
    z = ZipReader(stream)
    assert z.read("docs/readme.md").startswith(b"zipkit sample archive")
    z.close()
    assert not stream.closed


def test_lookup_by_index_name_and_raw_name(sample_bytes):
    with ZipReader(sample_bytes) as z:
        by_index = z.open_entry(3)
        assert by_index.name == "data.bin"
        assert z.open_entry(b"data.bin").index == 3
        assert z.get_info("data.bin") == by_index.entry


def test_missing_entries_are_none(sample_bytes):
    with ZipReader(sample_bytes) as z:
        assert z.open_entry("nope.txt") is None
        assert z.open_entry(99) is None
        assert z.open_entry(-1) is None
        assert z.get_info("nope.txt") is None


def test_read_of_missing_name_raises(sample_bytes):
    with ZipReader(sample_bytes) as z:
        with pytest.raises(EntryNotFound):
            z.read("nope.txt")
        with pytest.raises(KeyError):
            z.read("nope.txt")


def test_bool_is_not_an_index(sample_bytes):
    with ZipReader(sample_bytes) as z:
        with pytest.raises(TypeError):
            z.open_entry(True)


def test_entry_metadata(sample_bytes, fixed_time):
    with ZipReader(sample_bytes) as z:
        lib = z.open_entry("lib/arm64/libfoo.so")
        assert lib.mode == 0o100755
        assert lib.compression == ZipCompression.NONE
        assert lib.compressed_size == lib.size
        assert lib.last_modified == fixed_time
        assert lib.last_modified_timestamp == calendar.timegm(fixed_time.timetuple())
        assert lib.comment == b""
        assert not lib.is_dir

        assert z.open_entry("a.txt").mode == 0o100644
        assert z.open_entry("docs/readme.md").compression == ZipCompression.BZIP2
        assert z.open_entry("data.bin").compression == ZipCompression.ZSTD


def test_directory_entry(sample_bytes):
    with ZipReader(sample_bytes) as z:
        handle = z.open_entry("assets/")
        assert handle.is_dir
        assert handle.size == 0
        assert handle.mode == 0o40755
        assert handle.read() == b""
        assert z.open_entry_raw("assets/").read() == b""


def test_aligned_data_offset(sample_bytes):
    with ZipReader(sample_bytes) as z:
        handle = z.open_entry("lib/arm64/libfoo.so")
        assert handle.data_offset % 4096 == 0
        assert sample_bytes[handle.data_offset : handle.data_offset + 16] == bytes(range(16))


def test_raw_read_returns_stored_bytes():
    w = ZipWriter()
    w.write_entry("a.txt", b"hello")
    data = w.to_bytes()

    with ZipReader(data) as z:
        raw = z.open_entry("a.txt", raw=True)
        assert raw.raw
        stored = raw.read()
        assert stored == z.read("a.txt", raw=True)
        assert zlib.decompress(stored, -zlib.MAX_WBITS) == b"hello"


def test_unknown_compression_method(set_method):
    w = ZipWriter()
    w.write_entry("x.bin", b"payload", ZipCompression.NONE)
    data = set_method(w.to_bytes(), "x.bin", 99)

    with ZipReader(data) as z:
        handle = z.open_entry("x.bin")
        assert handle.compression == ZipCompression.UNSUPPORTED
        with pytest.raises(UnsupportedCompression):
            handle.read()
        assert z.open_entry_raw("x.bin").read() == b"payload"


def test_crc_mismatch_is_scoped_to_the_read(sample_bytes, corrupt_data):
    data = corrupt_data(sample_bytes, "lib/arm64/libfoo.so")

    with ZipReader(data) as z:
        with pytest.raises(IntegrityMismatch):
            z.read("lib/arm64/libfoo.so")
        # Raw reads skip verification
        assert len(z.read("lib/arm64/libfoo.so", raw=True)) == len(bytes(range(256)) * 40)
        assert z.read("a.txt") == b"hello"


def test_corrupt_compressed_entry(sample_bytes, corrupt_data):
    data = corrupt_data(sample_bytes, "a.txt")
    with ZipReader(data) as z:
        with pytest.raises(ZipError):
            z.read("a.txt")
        assert z.read("data.bin").startswith(b"\x00\x01\x02\x03")


def test_duplicate_names_resolve_to_first():
    w = ZipWriter()
    w.write_entry("dup.txt", b"first")
    w.write_entry("dup.txt", b"second")
    data = w.to_bytes()

    with ZipReader(data) as z:
        assert z.get_entry_count() == 2
        assert z.open_entry("dup.txt").index == 0
        assert z.read("dup.txt") == b"first"
        assert z.read(1) == b"second"


def test_iteration_is_a_snapshot(sample_bytes, sample_contents):
    with ZipReader(sample_bytes) as z:
        handles = list(z)
    assert [h.name for h in handles] == list(sample_contents)


def test_use_after_close(sample_bytes):
    z = ZipReader(sample_bytes)
    handle = z.open_entry("a.txt")
    z.close()
    z.close()
    assert z.closed
    with pytest.raises(UseAfterClose):
        z.get_entry_names()
    with pytest.raises(UseAfterClose):
        z.open_entry("a.txt")
    with pytest.raises(UseAfterClose):
        handle.read()


def test_not_a_zip():
    with pytest.raises(MalformedArchive):
        ZipReader(b"this is definitely not a zip archive" * 4)
    with pytest.raises(ZipFormatError):
        ZipReader(b"PK")


def test_central_directory_out_of_bounds(sample_bytes):
    data = bytearray(sample_bytes)
    struct.pack_into("<I", data, _eocd_position(sample_bytes) + 16, 0xFFFFFF00)
    with pytest.raises(ZipFormatError):
        ZipReader(bytes(data))


def test_truncated_archive(sample_bytes):
    with pytest.raises(ZipFormatError):
        ZipReader(sample_bytes[: len(sample_bytes) // 2])


def test_zip64_is_rejected(sample_bytes):
    eocd = _eocd_position(sample_bytes)
    locator = struct.pack("<IIQI", 0x07064B50, 0, 0, 1)
    with pytest.raises(ZipUnsupportedFeature):
        ZipReader(sample_bytes[:eocd] + locator + sample_bytes[eocd:])


def test_multi_disk_is_rejected(sample_bytes):
    data = bytearray(sample_bytes)
    struct.pack_into("<H", data, _eocd_position(sample_bytes) + 4, 1)
    with pytest.raises(ZipUnsupportedFeature):
        ZipReader(bytes(data))


def test_trailing_bytes_after_end_record(sample_bytes):
    with ZipReader(sample_bytes + b"trailing junk") as z:
        assert z.read("a.txt") == b"hello"


def test_reads_stdlib_archives():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("stored.txt", b"stored data", compress_type=zipfile.ZIP_STORED)
        zf.writestr("deflated.txt", b"deflated data " * 100, compress_type=zipfile.ZIP_DEFLATED)
        zf.writestr("bzipped.txt", b"bzip2 data " * 100, compress_type=zipfile.ZIP_BZIP2)
        zf.writestr("empty/", b"")
        zf.comment = b"made by zipfile"

    with ZipReader(buf.getvalue()) as z:
        assert z.get_entry_names() == ["stored.txt", "deflated.txt", "bzipped.txt", "empty/"]
        assert z.read("stored.txt") == b"stored data"
        assert z.read("deflated.txt") == b"deflated data " * 100
        assert z.read("bzipped.txt") == b"bzip2 data " * 100
        assert z.open_entry("empty/").is_dir
        assert z.get_raw_comment() == b"made by zipfile"


def test_stdlib_reads_our_archives():
    w = ZipWriter()
    w.write_entry("stored.bin", b"\x00" * 1000, ZipCompression.NONE, alignment=4096)
    w.write_entry("deflated.txt", b"deflated " * 100, ZipCompression.DEFLATE)
    w.write_entry("bzipped.txt", b"bzip2 " * 100, ZipCompression.BZIP2, alignment=8)
    w.write_entry("unicode/naïve.txt", "ünïcödé")
    w.write_dir("dir")
    data = w.to_bytes()

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.testzip() is None
        assert zf.read("stored.bin") == b"\x00" * 1000
        assert zf.read("deflated.txt") == b"deflated " * 100
        assert zf.read("bzipped.txt") == b"bzip2 " * 100
        assert zf.read("unicode/naïve.txt") == "ünïcödé".encode("utf-8")
        assert zf.getinfo("dir/").is_dir()


def test_iter_entries_raw(sample_bytes):
    with ZipReader(sample_bytes) as z:
        handles = list(z.iter_entries(raw=True))
        assert all(h.raw for h in handles)
        assert handles[0].read() == z.read("a.txt", raw=True)
