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
Utility functions for zipkit.

This module provides helper functions for CRC32 calculation, DOS date/time
conversion, alignment arithmetic, name decoding and safe binary I/O operations.
"""

import zlib
from contextlib import contextmanager
from datetime import datetime
from typing import BinaryIO, Iterator, Optional

from .constants import (
    ALIGNMENT_EXTRA_FIELD_SIZE,
    FLAG_UTF8,
    LOCAL_FILE_HEADER_SIZE,
    MAX_ALIGNMENT,
)
from .errors import ZipAlignmentError, ZipFormatError, ZipIOError


def crc32(data: bytes) -> int:
    """Calculate CRC32 checksum for data.

    Args:
        data: Bytes to calculate CRC32 for.

    Returns:
        CRC32 value as unsigned 32-bit integer.
    """
    return zlib.crc32(data) & 0xFFFFFFFF


def dos_datetime_to_timestamp(dos_date: int, dos_time: int) -> datetime:
    """Convert DOS date and time to Python datetime.

    DOS date format (16 bits):
        Bits 0-4: Day (1-31)
        Bits 5-8: Month (1-12)
        Bits 9-15: Year - 1980 (0-127, so 1980-2107)

    DOS time format (16 bits):
        Bits 0-4: Second / 2 (0-29, so 0-58 seconds in 2-second increments)
        Bits 5-10: Minute (0-59)
        Bits 11-15: Hour (0-23)

    Args:
        dos_date: DOS date value (16-bit unsigned integer).
        dos_time: DOS time value (16-bit unsigned integer).

    Returns:
        Naive datetime object representing the DOS date/time.
    """
    day = dos_date & 0x1F
    month = (dos_date >> 5) & 0x0F
    year = ((dos_date >> 9) & 0x7F) + 1980

    second = (dos_time & 0x1F) * 2
    minute = (dos_time >> 5) & 0x3F
    hour = (dos_time >> 11) & 0x1F

    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        # Zeroed or garbage fields; DOS epoch
        return datetime(1980, 1, 1, 0, 0, 0)


def timestamp_to_dos_datetime(dt: datetime) -> tuple[int, int]:
    """Convert Python datetime to DOS date and time.

    Years outside 1980-2107 are clamped to the nearest representable year.
    Seconds are truncated to an even number.

    Args:
        dt: datetime object to convert.

    Returns:
        Tuple of (dos_date, dos_time) as 16-bit unsigned integers.
    """
    year = dt.year - 1980
    if year < 0:
        year = 0
    elif year > 127:
        year = 127

    dos_date = dt.day | (dt.month << 5) | (year << 9)
    dos_time = (dt.second // 2) | (dt.minute << 5) | (dt.hour << 11)

    return (dos_date & 0xFFFF, dos_time & 0xFFFF)


def decode_name(raw: bytes, flags: int) -> str:
    """Decode an entry name or comment.

    UTF-8 is used when general purpose bit 11 is set. Otherwise the bytes are
    tried as strict UTF-8 first and fall back to CP437, the historical
    default of the format.
    """
    if flags & FLAG_UTF8:
        return raw.decode("utf-8", errors="replace")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("cp437")


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


def validate_alignment(alignment: int) -> int:
    """Check an alignment request and return it.

    0 disables alignment. Any other value must be a power of two that fits
    the u16 stored in the alignment extra field.

    Raises:
        ZipAlignmentError: If the alignment is negative, too large or not a power of two.
    """
    if alignment == 0:
        return 0
    if alignment < 0 or alignment > MAX_ALIGNMENT or not is_power_of_two(alignment):
        raise ZipAlignmentError(
            f"Invalid alignment: {alignment} (must be 0 or a power of two up to {MAX_ALIGNMENT})"
        )
    return alignment


def alignment_padding(offset: int, name_len: int, alignment: int) -> int:
    """Number of zero bytes needed after the alignment extra field header.

    ``offset`` is the position of the local file header. The returned padding
    makes ``offset + 30 + name_len + 6 + padding`` a multiple of ``alignment``.
    """
    if alignment <= 1:
        return 0
    header_end = offset + LOCAL_FILE_HEADER_SIZE + name_len + ALIGNMENT_EXTRA_FIELD_SIZE
    return (alignment - header_end % alignment) % alignment


@contextmanager
def io_context(operation: str, offset: Optional[int] = None) -> Iterator[None]:
    """Translate ``OSError`` raised inside the block into ``ZipIOError``."""
    try:
        yield
    except OSError as e:
        raise ZipIOError(operation, offset, e) from e


def read_exact(f: BinaryIO, size: int) -> bytes:
    """Read exactly 'size' bytes from file, raising ZipFormatError on short read.

    Args:
        f: Binary file-like object to read from.
        size: Number of bytes to read.

    Returns:
        Exactly 'size' bytes of data.

    Raises:
        ZipFormatError: If fewer than 'size' bytes could be read or size is invalid.
    """
    if size < 0:
        raise ZipFormatError(f"Invalid read size: {size} (must be non-negative)")

    data = f.read(size)
    if len(data) != size:
        raise ZipFormatError(
            f"Unexpected end of file: expected {size} bytes, got {len(data)}"
        )
    return data


def write_all(f: BinaryIO, data: bytes) -> None:
    """Write all of 'data', raising ZipIOError when the sink accepts less.

    Args:
        f: Binary file-like object to write to.
        data: Bytes to write.
    """
    written = f.write(data)
    if written is not None and written != len(data):
        raise ZipIOError(
            "write", None, OSError(f"expected to write {len(data)} bytes, wrote {written} bytes")
        )


def get_stream_size(f: BinaryIO) -> int:
    """Return the total size of a seekable stream, restoring its position."""
    position = f.tell()
    try:
        f.seek(0, 2)
        return f.tell()
    finally:
        f.seek(position)
