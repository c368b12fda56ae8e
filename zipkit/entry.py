"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
Entry access: locating, fetching and decoding the data of a single entry.

The module-level functions work on any seekable stream and are shared by the
reader and by the deletion engine, which reads entries back out of a
writer's own sink. ``ZipEntryHandle`` is the transient object handed out by
``ZipReader.open_entry``.
"""

import calendar
import logging
from datetime import datetime
from typing import TYPE_CHECKING, BinaryIO, Optional

from .codec import ZipCompression, decompress
from .constants import (
    DATA_DESCRIPTOR,
    DATA_DESCRIPTOR_SIZE,
    DATA_DESCRIPTOR_SIZE_NO_SIG,
    FLAG_DATA_DESCRIPTOR,
    FLAG_ENCRYPTED,
    LOCAL_FILE_HEADER_SIZE,
)
from .errors import ZipCrcError, ZipFormatError, ZipUnsupportedFeature
from .structures import LocalFileHeader, ZipEntry, parse_local_file_header
from .utils import crc32, io_context, read_exact

if TYPE_CHECKING:
    from .reader import ZipReader

logger = logging.getLogger(__name__)


def read_local_header(f: BinaryIO, entry: ZipEntry, file_size: int) -> LocalFileHeader:
    """Parse the local file header of an entry.

    Differences between the local and the central copy are tolerated and
    logged; only the local name/extra lengths decide where the data starts.

    Raises:
        ZipFormatError: If the header lies outside the archive or is malformed.
    """
    offset = entry.local_header_offset
    if offset + LOCAL_FILE_HEADER_SIZE > file_size:
        raise ZipFormatError(
            f"Invalid local header offset for entry '{entry.name}': {offset} (file size: {file_size})"
        )

    with io_context("read local header", offset):
        f.seek(offset)
        header = parse_local_file_header(f)

    if header.filename != entry.raw_name:
        logger.warning(
            "Local header name %r differs from central directory name %r at offset %d",
            header.filename,
            entry.raw_name,
            offset,
        )
    if header.compression_method != entry.compression_method:
        logger.warning(
            "Local header of '%s' declares method %d, central directory %d",
            entry.name,
            header.compression_method,
            entry.compression_method,
        )
    return header


def read_raw_data(f: BinaryIO, entry: ZipEntry, data_offset: int, file_size: int) -> bytes:
    """Read the stored (possibly compressed) bytes of an entry.

    Raises:
        ZipFormatError: If the data range extends beyond the archive.
    """
    if data_offset + entry.compressed_size > file_size:
        raise ZipFormatError(
            f"Compressed data extends beyond file for entry '{entry.name}': "
            f"position {data_offset}, size {entry.compressed_size} (file size: {file_size})"
        )
    with io_context("read entry data", data_offset):
        f.seek(data_offset)
        return read_exact(f, entry.compressed_size)


def entry_span(f: BinaryIO, entry: ZipEntry, end: int) -> int:
    """Bytes occupied by an entry: local header, data and data descriptor if any."""
    header = read_local_header(f, entry, end)
    span = header.size + entry.compressed_size

    if entry.flags & FLAG_DATA_DESCRIPTOR:
        descriptor_offset = entry.local_header_offset + span
        with io_context("read data descriptor", descriptor_offset):
            f.seek(descriptor_offset)
            signature = f.read(4)
        if signature == DATA_DESCRIPTOR.to_bytes(4, "little"):
            span += DATA_DESCRIPTOR_SIZE
        else:
            span += DATA_DESCRIPTOR_SIZE_NO_SIG
        span = min(span, end - entry.local_header_offset)
    return span


def decode_entry(entry: ZipEntry, raw_data: bytes) -> bytes:
    """Decompress stored bytes and verify them against the entry's CRC32.

    Raises:
        ZipUnsupportedFeature: If the entry is encrypted or its method is unknown.
        ZipCompressionError: If the compressed stream is corrupt.
        ZipCrcError: If the decompressed data does not match the stored CRC32.
    """
    if entry.is_dir:
        return b""

    if entry.flags & FLAG_ENCRYPTED:
        raise ZipUnsupportedFeature(f"Entry '{entry.name}' is encrypted (encryption not supported)")

    compression = entry.compression
    if compression == ZipCompression.UNSUPPORTED:
        raise ZipUnsupportedFeature(
            f"Unsupported compression method {entry.compression_method} for entry '{entry.name}'"
        )

    data = decompress(compression, raw_data, entry.uncompressed_size)

    actual_crc = crc32(data)
    if actual_crc != entry.crc32:
        raise ZipCrcError(
            f"CRC32 mismatch for entry '{entry.name}': expected 0x{entry.crc32:08X}, got 0x{actual_crc:08X}"
        )
    return data


class ZipEntryHandle:
    """A single entry of an open archive.

    Handles borrow the byte source of the ``ZipReader`` that produced them and
    become unusable once that reader is closed. A handle opened with
    ``raw=True`` returns the stored bytes from ``read()`` without
    decompression or CRC verification.
    """

    def __init__(self, reader: "ZipReader", entry: ZipEntry, raw: bool = False):
        self._reader = reader
        self._entry = entry
        self._raw = raw

    @property
    def entry(self) -> ZipEntry:
        return self._entry

    @property
    def raw(self) -> bool:
        return self._raw

    @property
    def index(self) -> int:
        return self._entry.index

    @property
    def name(self) -> str:
        """Entry name.

        Names come straight from the archive and may be absolute or contain
        ``..`` components; validate them before using them as filesystem paths.
        """
        return self._entry.name

    @property
    def raw_name(self) -> bytes:
        return self._entry.raw_name

    @property
    def comment(self) -> bytes:
        return self._entry.comment

    @property
    def is_dir(self) -> bool:
        return self._entry.is_dir

    @property
    def mode(self) -> Optional[int]:
        return self._entry.unix_mode

    @property
    def crc32(self) -> int:
        return self._entry.crc32

    @property
    def extra_data(self) -> bytes:
        return self._entry.extra

    @property
    def size(self) -> int:
        return self._entry.uncompressed_size

    @property
    def compressed_size(self) -> int:
        return self._entry.compressed_size

    @property
    def compression(self) -> ZipCompression:
        return self._entry.compression

    @property
    def last_modified(self) -> datetime:
        return self._entry.date_time

    @property
    def last_modified_timestamp(self) -> int:
        """POSIX timestamp of the modification time, reading the DOS time as UTC."""
        return calendar.timegm(self._entry.date_time.timetuple())

    @property
    def data_offset(self) -> int:
        return self._reader.data_offset(self._entry)

    def read(self) -> bytes:
        """Return the entry's data (decompressed and verified unless raw)."""
        return self._reader.read_entry(self._entry, raw=self._raw)

    def __repr__(self) -> str:
        kind = "raw " if self._raw else ""
        return f"<ZipEntryHandle {kind}#{self.index} {self.name!r} size={self.size}>"
