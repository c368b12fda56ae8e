import struct
from datetime import datetime

import pytest

from zipkit import ZipCompression, ZipReader, ZipWriter

FIXED_TIME = datetime(2024, 5, 17, 10, 30, 42)

NATIVE_LIB = bytes(range(256)) * 40
README = ("zipkit sample archive\n" * 200).encode("utf-8")
BLOB = b"\x00\x01\x02\x03zstd payload " * 300

SAMPLE_CONTENTS = {
    "a.txt": b"hello",
    "lib/arm64/libfoo.so": NATIVE_LIB,
    "docs/readme.md": README,
    "data.bin": BLOB,
    "assets/": b"",
}


@pytest.fixture
def fixed_time():
    return FIXED_TIME


@pytest.fixture
def sample_contents():
    return dict(SAMPLE_CONTENTS)


@pytest.fixture
def sample_bytes():
    """An archive using every supported method, an aligned entry and a directory."""
    w = ZipWriter()
    w.write_entry("a.txt", b"hello", date_time=FIXED_TIME)
    w.write_entry(
        "lib/arm64/libfoo.so",
        NATIVE_LIB,
        ZipCompression.NONE,
        alignment=4096,
        date_time=FIXED_TIME,
        mode=0o755,
    )
    w.write_entry("docs/readme.md", README, ZipCompression.BZIP2, date_time=FIXED_TIME)
    w.write_entry("data.bin", BLOB, ZipCompression.ZSTD, date_time=FIXED_TIME)
    w.write_dir("assets", date_time=FIXED_TIME)
    w.set_comment("sample archive")
    return w.to_bytes()


@pytest.fixture
def sample_path(tmp_path, sample_bytes):
    path = tmp_path / "sample.zip"
    path.write_bytes(sample_bytes)
    return path


def _central_header_position(data: bytes, raw_name: bytes) -> int:
    pos = data.find(b"PK\x01\x02")
    while pos != -1:
        name_len = struct.unpack_from("<H", data, pos + 28)[0]
        if data[pos + 46 : pos + 46 + name_len] == raw_name:
            return pos
        pos = data.find(b"PK\x01\x02", pos + 4)
    raise AssertionError(f"no central header for {raw_name!r}")


@pytest.fixture
def set_method():
    """Rewrite the compression method id of an entry in both of its headers."""

    def _set_method(data: bytes, name: str, method_id: int) -> bytes:
        with ZipReader(data) as z:
            entry = z.get_info(name)
        patched = bytearray(data)
        struct.pack_into("<H", patched, entry.local_header_offset + 8, method_id)
        struct.pack_into("<H", patched, _central_header_position(data, entry.raw_name) + 10, method_id)
        return bytes(patched)

    return _set_method


@pytest.fixture
def corrupt_data():
    """Flip the first stored byte of an entry."""

    def _corrupt_data(data: bytes, name: str) -> bytes:
        with ZipReader(data) as z:
            offset = z.data_offset(z.get_info(name))
        patched = bytearray(data)
        patched[offset] ^= 0xFF
        return bytes(patched)

    return _corrupt_data
