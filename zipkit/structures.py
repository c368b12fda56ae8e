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
ZIP structure definitions, parsing and packing functions.

This module defines dataclasses for the classic ZIP records (local file
headers, central directory headers and the end of central directory record),
the immutable ``ZipEntry`` record produced by the archive index, and helpers
for the extra field area.
"""

import struct
from dataclasses import dataclass, replace
from datetime import datetime
from typing import BinaryIO, Iterator, Optional

from .constants import (
    ALIGNMENT_EXTRA_FIELD_TAG,
    CENTRAL_DIR_HEADER,
    CENTRAL_DIR_HEADER_SIZE,
    DIR_MODE_BIT,
    END_OF_CENTRAL_DIR,
    END_OF_CENTRAL_DIR_SIZE,
    HOST_UNIX,
    LOCAL_FILE_HEADER,
    LOCAL_FILE_HEADER_SIZE,
    VERSION_DEFAULT,
    VERSION_MADE_BY_DEFAULT,
)
from .errors import ZipFormatError
from .utils import decode_name, dos_datetime_to_timestamp, read_exact

LOCAL_FILE_HEADER_STRUCT = struct.Struct("<IHHHHHIIIHH")
CENTRAL_DIR_HEADER_STRUCT = struct.Struct("<IHHHHHHIIIHHHHHII")
END_OF_CENTRAL_DIR_STRUCT = struct.Struct("<IHHHHIIH")
EXTRA_FIELD_HEADER_STRUCT = struct.Struct("<HH")


@dataclass
class LocalFileHeader:
    """Local file header structure.

    This header appears before each file's compressed data in the ZIP archive.
    """

    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename: bytes
    extra: bytes

    @property
    def size(self) -> int:
        """Total length of the header including name and extra field."""
        return LOCAL_FILE_HEADER_SIZE + len(self.filename) + len(self.extra)


@dataclass
class CentralDirectoryHeader:
    """Central directory header structure.

    This header appears in the central directory and contains information
    about a file entry, including a pointer to the local file header.
    """

    version_made_by: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    disk_num: int
    internal_attrs: int
    external_attrs: int
    local_header_offset: int
    filename: bytes
    extra: bytes
    comment: bytes

    @property
    def size(self) -> int:
        return CENTRAL_DIR_HEADER_SIZE + len(self.filename) + len(self.extra) + len(self.comment)


@dataclass
class EndOfCentralDirectory:
    """End of Central Directory record.

    This record marks the end of the central directory and contains
    information needed to locate the central directory.
    """

    disk_num: int
    cd_disk: int
    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int
    comment: bytes


@dataclass(frozen=True)
class ZipEntry:
    """Metadata of one entry, as recorded in the central directory.

    Records are immutable once the archive index is built. ``index`` is the
    physical position in the central directory. The data offset is not part
    of the record: it depends on the local header and is resolved on demand.
    """

    index: int
    raw_name: bytes
    name: str
    compression_method: int
    compressed_size: int
    uncompressed_size: int
    crc32: int
    flags: int
    mod_time: int
    mod_date: int
    local_header_offset: int
    extra: bytes = b""
    comment: bytes = b""
    version_made_by: int = VERSION_MADE_BY_DEFAULT
    version_needed: int = VERSION_DEFAULT
    internal_attrs: int = 0
    external_attrs: int = 0

    @classmethod
    def from_central_header(cls, index: int, header: CentralDirectoryHeader) -> "ZipEntry":
        name = decode_name(header.filename, header.flags)
        return cls(
            index=index,
            raw_name=header.filename,
            name=name,
            compression_method=header.compression_method,
            compressed_size=header.compressed_size,
            uncompressed_size=header.uncompressed_size,
            crc32=header.crc32,
            flags=header.flags,
            mod_time=header.mod_time,
            mod_date=header.mod_date,
            local_header_offset=header.local_header_offset,
            extra=header.extra,
            comment=header.comment,
            version_made_by=header.version_made_by,
            version_needed=header.version,
            internal_attrs=header.internal_attrs,
            external_attrs=header.external_attrs,
        )

    @property
    def is_dir(self) -> bool:
        return self.name.endswith("/") and self.uncompressed_size == 0

    @property
    def unix_mode(self) -> Optional[int]:
        """Unix mode from the external attributes, if the entry was made on Unix."""
        if (self.version_made_by >> 8) != HOST_UNIX:
            return None
        mode = self.external_attrs >> 16
        return mode or None

    @property
    def date_time(self) -> datetime:
        """Get modification date/time as (naive, lossy) datetime object."""
        return dos_datetime_to_timestamp(self.mod_date, self.mod_time)

    @property
    def compression(self):
        from .codec import ZipCompression

        return ZipCompression.from_method_id(self.compression_method)

    def with_index(self, index: int) -> "ZipEntry":
        return replace(self, index=index)

    def with_offset(self, local_header_offset: int) -> "ZipEntry":
        return replace(self, local_header_offset=local_header_offset)


def parse_local_file_header(f: BinaryIO) -> LocalFileHeader:
    """Parse a local file header from the current file position.

    Args:
        f: Binary file-like object positioned at the start of a local file header.

    Returns:
        LocalFileHeader object.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    (
        signature,
        version,
        flags,
        compression_method,
        mod_time,
        mod_date,
        crc,
        compressed_size,
        uncompressed_size,
        filename_len,
        extra_len,
    ) = LOCAL_FILE_HEADER_STRUCT.unpack(read_exact(f, LOCAL_FILE_HEADER_SIZE))

    if signature != LOCAL_FILE_HEADER:
        raise ZipFormatError(
            f"Invalid local file header signature: 0x{signature:08X}, "
            f"expected 0x{LOCAL_FILE_HEADER:08X}"
        )

    filename = read_exact(f, filename_len)
    extra = read_exact(f, extra_len)

    return LocalFileHeader(
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        filename=filename,
        extra=extra,
    )


def parse_central_directory_header(f: BinaryIO) -> CentralDirectoryHeader:
    """Parse a central directory header from the current file position.

    Args:
        f: Binary file-like object positioned at the start of a central directory header.

    Returns:
        CentralDirectoryHeader object.

    Raises:
        ZipFormatError: If the signature is invalid or file is truncated.
    """
    (
        signature,
        version_made_by,
        version,
        flags,
        compression_method,
        mod_time,
        mod_date,
        crc,
        compressed_size,
        uncompressed_size,
        filename_len,
        extra_len,
        comment_len,
        disk_num,
        internal_attrs,
        external_attrs,
        local_header_offset,
    ) = CENTRAL_DIR_HEADER_STRUCT.unpack(read_exact(f, CENTRAL_DIR_HEADER_SIZE))

    if signature != CENTRAL_DIR_HEADER:
        raise ZipFormatError(
            f"Invalid central directory header signature: 0x{signature:08X}, "
            f"expected 0x{CENTRAL_DIR_HEADER:08X}"
        )

    filename = read_exact(f, filename_len)
    extra = read_exact(f, extra_len)
    comment = read_exact(f, comment_len)

    return CentralDirectoryHeader(
        version_made_by=version_made_by,
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        disk_num=disk_num,
        internal_attrs=internal_attrs,
        external_attrs=external_attrs,
        local_header_offset=local_header_offset,
        filename=filename,
        extra=extra,
        comment=comment,
    )


def parse_eocd(data: bytes) -> EndOfCentralDirectory:
    """Parse an End of Central Directory record from a buffer.

    Args:
        data: Bytes starting with the EOCD signature and running at least to
            the end of the record's comment.

    Returns:
        EndOfCentralDirectory object.

    Raises:
        ZipFormatError: If the signature is invalid or the record is truncated.
    """
    if len(data) < END_OF_CENTRAL_DIR_SIZE:
        raise ZipFormatError(
            f"Truncated EOCD record: {len(data)} bytes (expected at least {END_OF_CENTRAL_DIR_SIZE})"
        )
    (
        signature,
        disk_num,
        cd_disk,
        cd_records_on_disk,
        cd_records_total,
        cd_size,
        cd_offset,
        comment_len,
    ) = END_OF_CENTRAL_DIR_STRUCT.unpack_from(data)

    if signature != END_OF_CENTRAL_DIR:
        raise ZipFormatError(
            f"Invalid EOCD signature: 0x{signature:08X}, "
            f"expected 0x{END_OF_CENTRAL_DIR:08X}"
        )

    comment = data[END_OF_CENTRAL_DIR_SIZE : END_OF_CENTRAL_DIR_SIZE + comment_len]
    if len(comment) != comment_len:
        raise ZipFormatError(
            f"Truncated EOCD comment: expected {comment_len} bytes, got {len(comment)}"
        )

    return EndOfCentralDirectory(
        disk_num=disk_num,
        cd_disk=cd_disk,
        cd_records_on_disk=cd_records_on_disk,
        cd_records_total=cd_records_total,
        cd_size=cd_size,
        cd_offset=cd_offset,
        comment=comment,
    )


def pack_local_file_header(entry: ZipEntry, extra: bytes = b"") -> bytes:
    """Serialize the local file header for an entry.

    The local copy carries its own extra field (alignment padding for new
    entries), everything else mirrors the central record.
    """
    return (
        LOCAL_FILE_HEADER_STRUCT.pack(
            LOCAL_FILE_HEADER,
            entry.version_needed,
            entry.flags,
            entry.compression_method,
            entry.mod_time,
            entry.mod_date,
            entry.crc32,
            entry.compressed_size,
            entry.uncompressed_size,
            len(entry.raw_name),
            len(extra),
        )
        + entry.raw_name
        + extra
    )


def pack_central_directory_header(entry: ZipEntry) -> bytes:
    """Serialize the central directory header for an entry."""
    return (
        CENTRAL_DIR_HEADER_STRUCT.pack(
            CENTRAL_DIR_HEADER,
            entry.version_made_by,
            entry.version_needed,
            entry.flags,
            entry.compression_method,
            entry.mod_time,
            entry.mod_date,
            entry.crc32,
            entry.compressed_size,
            entry.uncompressed_size,
            len(entry.raw_name),
            len(entry.extra),
            len(entry.comment),
            0,  # disk number start
            entry.internal_attrs,
            entry.external_attrs,
            entry.local_header_offset,
        )
        + entry.raw_name
        + entry.extra
        + entry.comment
    )


def pack_eocd(num_entries: int, cd_size: int, cd_offset: int, comment: bytes = b"") -> bytes:
    """Serialize a single-disk End of Central Directory record."""
    return (
        END_OF_CENTRAL_DIR_STRUCT.pack(
            END_OF_CENTRAL_DIR,
            0,  # number of this disk
            0,  # disk with start of central directory
            num_entries,
            num_entries,
            cd_size,
            cd_offset,
            len(comment),
        )
        + comment
    )


def iter_extra_fields(extra: bytes) -> Iterator[tuple[int, bytes]]:
    """Yield ``(tag, body)`` pairs from an extra field area.

    Iteration stops silently at a truncated trailing record; some writers pad
    the area with bytes that do not form a complete field.
    """
    pos = 0
    while pos + EXTRA_FIELD_HEADER_STRUCT.size <= len(extra):
        tag, size = EXTRA_FIELD_HEADER_STRUCT.unpack_from(extra, pos)
        pos += EXTRA_FIELD_HEADER_STRUCT.size
        if pos + size > len(extra):
            break
        yield tag, extra[pos : pos + size]
        pos += size


def build_alignment_extra(alignment: int, padding: int) -> bytes:
    """Build the alignment extra field: u16 alignment followed by zero padding."""
    body = struct.pack("<H", alignment) + b"\x00" * padding
    return EXTRA_FIELD_HEADER_STRUCT.pack(ALIGNMENT_EXTRA_FIELD_TAG, len(body)) + body


def find_alignment(extra: bytes) -> int:
    """Return the alignment recorded in an extra field area, or 0 if there is none."""
    for tag, body in iter_extra_fields(extra):
        if tag == ALIGNMENT_EXTRA_FIELD_TAG and len(body) >= 2:
            return struct.unpack_from("<H", body)[0]
    return 0


def directory_mode(mode: int) -> int:
    """Force the directory type bits on a unix mode."""
    return mode | DIR_MODE_BIT
