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
ZIP archive writer implementation.

This module provides the ZipWriter class for creating classic ZIP archives
and for appending to existing ones. Entries can be stored, deflated,
bzip2- or zstd-compressed, and their data can be aligned to a power-of-two
boundary.
"""

import io
import logging
import os
import threading
from datetime import datetime
from typing import BinaryIO, Optional, Union

from .codec import ZipCompression, compress
from .constants import (
    DEFAULT_DIR_MODE,
    DEFAULT_FILE_MODE,
    FLAG_UTF8,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    MAX_COMMENT_SIZE,
    MAX_ENTRIES,
    MAX_FILE_SIZE,
    MAX_NAME_SIZE,
    MSDOS_DIR_ATTR,
    VERSION_BZIP2,
    VERSION_DEFAULT,
    VERSION_MADE_BY_DEFAULT,
    VERSION_ZSTD,
)
from .errors import (
    ZipClosedError,
    ZipEntryNotFound,
    ZipError,
    ZipFormatError,
    ZipUnsupportedFeature,
)
from .entry import entry_span
from .structures import (
    ZipEntry,
    build_alignment_extra,
    directory_mode,
    pack_central_directory_header,
    pack_eocd,
    pack_local_file_header,
)
from .utils import (
    alignment_padding,
    crc32,
    decode_name,
    get_stream_size,
    io_context,
    read_exact,
    timestamp_to_dos_datetime,
    validate_alignment,
    write_all,
)

logger = logging.getLogger(__name__)

_VERSION_NEEDED = {
    ZipCompression.NONE: VERSION_DEFAULT,
    ZipCompression.DEFLATE: VERSION_DEFAULT,
    ZipCompression.BZIP2: VERSION_BZIP2,
    ZipCompression.ZSTD: VERSION_ZSTD,
}

_FILE_TYPE_MASK = 0o170000
_REGULAR_FILE = 0o100000


class ZipWriter:
    """Writer for classic ZIP archives.

    Entries are written immediately (local header followed by data); the
    central directory and end record are emitted by ``close()`` or
    ``to_bytes()``. After that the writer is spent and every mutating call
    raises ``ZipClosedError``.

    If a write fails half-way the writer is marked as failed: discard it.
    Further mutations raise ``ZipError`` and ``close()`` only releases the
    output without writing a central directory.

    Example:
        with ZipWriter("archive.zip") as z:
            z.write_entry("hello.txt", b"Hello, World!")
            z.write_entry("lib/arm64/libfoo.so", so_bytes, ZipCompression.NONE, alignment=4096)
            z.write_dir("assets/")
    """

    def __init__(
        self,
        file: Union[None, str, os.PathLike, bytes, bytearray, memoryview, BinaryIO] = None,
        append: bool = False,
    ):
        """Initialize ZipWriter.

        Args:
            file: Where the archive goes:
                - None: a new in-memory archive (see ``to_bytes()``).
                - path: a file, created or truncated unless ``append`` is set.
                - bytes: an existing archive, copied to memory and appended to
                  (empty bytes start a new archive).
                - file-like object: a seekable, readable and writable stream
                  owned by the caller; appended to if ``append`` is set.
            append: Keep the entries of the existing archive and add new ones
                after it.

        Raises:
            ZipFormatError: If appending to data that is not a valid archive.
        """
        if hasattr(file, "__fspath__"):
            file = os.fspath(file)

        self._path: Optional[str] = None
        adopt = False

        if file is None:
            self._file = io.BytesIO()
            self._should_close = True
        elif isinstance(file, (bytes, bytearray, memoryview)):
            self._file = io.BytesIO(bytes(file))
            self._should_close = True
            adopt = len(file) > 0
        elif isinstance(file, str):
            self._path = os.path.abspath(file)
            self._file = open(file, "r+b" if append else "w+b")
            self._should_close = True
            adopt = append
        else:
            for method in ("write", "read", "seek", "tell"):
                if not hasattr(file, method):
                    raise ZipFormatError(f"File-like object must have a {method}() method")
            self._file = file
            self._should_close = False
            adopt = append

        self._lock = threading.RLock()
        self._pending_entries: list[ZipEntry] = []
        self._comment: bytes = b""
        self._current_offset: int = 0
        self._closed: bool = False
        self._failed: bool = False
        # (start, end) of the last central directory and end record, while
        # no entry has been written since
        self._directory_slot: Optional[tuple[int, int]] = None

        if adopt:
            try:
                self._adopt_existing()
            except Exception:
                self._release()
                self._closed = True
                raise

    def _adopt_existing(self) -> None:
        """Take over the entries of the archive already present in the sink.

        Their bytes stay where they are. New entries go after the current end
        of the data, leaving the old central directory unreferenced; without
        new entries the next directory takes over its slot.
        """
        from .reader import ZipReader

        with io_context("inspect archive"):
            if get_stream_size(self._file) == 0:
                logger.debug("Append target is empty, starting a new archive")
                return

        reader = ZipReader(self._file)
        try:
            self._pending_entries = list(reader.entries)
            self._comment = reader.get_raw_comment()
            self._current_offset = reader.file_size
            self._directory_slot = self._find_directory_slot(reader.central_directory_offset)
        finally:
            reader.close()

        logger.debug(
            "Adopted %d existing entries, appending at offset %d",
            len(self._pending_entries),
            self._current_offset,
        )

    def _find_directory_slot(self, cd_offset: int) -> Optional[tuple[int, int]]:
        """Space held by the adopted central directory and end record.

        The slot also takes in the run of zeros between the last entry and the
        directory, left there when an earlier directory shrank in place.
        """
        floor = 0
        if self._pending_entries:
            last = max(self._pending_entries, key=lambda entry: entry.local_header_offset)
            if last.local_header_offset >= cd_offset:
                return None
            try:
                floor = last.local_header_offset + entry_span(self._file, last, cd_offset)
            except ZipFormatError as e:
                logger.warning("Not reusing the central directory slot: %s", e)
                return None
            if floor > cd_offset:
                return None

        with io_context("inspect central directory slot", floor):
            self._file.seek(floor)
            gap = read_exact(self._file, cd_offset - floor)
        start = floor + len(gap.rstrip(b"\x00"))
        return start, self._current_offset

    def _check_open(self) -> None:
        if self._closed:
            raise ZipClosedError("Archive is closed")

    def _check_writable(self) -> None:
        self._check_open()
        if self._failed:
            raise ZipError("A previous write failed; this writer must be discarded")

    def _find_pending(self, name: Union[str, bytes], skip: frozenset = frozenset()) -> int:
        """Position in the pending list of the first entry with this name.

        Raises:
            ZipEntryNotFound: If no pending entry (outside ``skip``) has the name.
        """
        is_raw = isinstance(name, (bytes, bytearray))
        for position, entry in enumerate(self._pending_entries):
            if position in skip:
                continue
            if (entry.raw_name if is_raw else entry.name) == name:
                return position
        raise ZipEntryNotFound(f"Entry not found: {name!r}")

    @staticmethod
    def _encode_name(path: Union[str, bytes]) -> tuple[bytes, str, int]:
        """Validate an entry name and return ``(raw_name, name, flags)``."""
        if isinstance(path, (bytes, bytearray)):
            raw_name = bytes(path).replace(b"\\", b"/")
            try:
                raw_name.decode("utf-8")
                flags = FLAG_UTF8
            except UnicodeDecodeError:
                flags = 0
            name = decode_name(raw_name, flags)
        else:
            name = path.replace("\\", "/")
            raw_name = name.encode("utf-8")
            flags = FLAG_UTF8

        if not raw_name:
            raise ZipFormatError("Entry name cannot be empty")
        if b"\x00" in raw_name:
            raise ZipFormatError("Entry name cannot contain null bytes")
        if len(raw_name) > MAX_NAME_SIZE:
            raise ZipFormatError(
                f"Entry name too long: {len(raw_name)} bytes (max {MAX_NAME_SIZE})"
            )
        return raw_name, name, flags

    def _write_record(self, template: ZipEntry, payload: bytes, alignment: int = 0) -> ZipEntry:
        """Write one entry (local header, alignment padding, data) at the cursor.

        ``template`` carries every header field except the offset and index,
        which are assigned here. Returns the record as appended.
        """
        if len(payload) > MAX_FILE_SIZE or template.uncompressed_size > MAX_FILE_SIZE:
            raise ZipUnsupportedFeature(
                f"Entry '{template.name}' is too large for a classic ZIP archive (ZIP64 not supported)"
            )
        if len(self._pending_entries) >= MAX_ENTRIES:
            raise ZipUnsupportedFeature(
                f"Too many entries for a classic ZIP archive (max {MAX_ENTRIES}, ZIP64 not supported)"
            )
        offset = self._current_offset
        if offset > MAX_FILE_SIZE:
            raise ZipUnsupportedFeature(
                "Local header offset exceeds 4 GiB (ZIP64 not supported)"
            )

        local_extra = b""
        if alignment > 1:
            padding = alignment_padding(offset, len(template.raw_name), alignment)
            local_extra = build_alignment_extra(alignment, padding)

        entry = template.with_offset(offset).with_index(len(self._pending_entries))
        header = pack_local_file_header(entry, local_extra)

        try:
            with io_context("write entry", offset):
                self._file.seek(offset)
                write_all(self._file, header)
                write_all(self._file, payload)
        except Exception:
            self._failed = True
            raise

        self._current_offset = offset + len(header) + len(payload)
        self._pending_entries.append(entry)
        self._directory_slot = None

        logger.debug(
            "Wrote entry '%s' (method %d, %d -> %d bytes) header at %d, data at %d",
            entry.name,
            entry.compression_method,
            entry.uncompressed_size,
            entry.compressed_size,
            offset,
            offset + len(header),
        )
        return entry

    def write_entry(
        self,
        path: Union[str, bytes],
        data: Union[bytes, bytearray, memoryview, str],
        compression: Union[ZipCompression, int, str] = ZipCompression.DEFLATE,
        alignment: int = 0,
        date_time: Optional[datetime] = None,
        mode: Optional[int] = None,
    ) -> ZipEntry:
        """Add an entry from bytes (or a string, encoded as UTF-8).

        Args:
            path: Entry name (path within the archive).
            data: Entry content.
            compression: Compression method.
            alignment: 0 to disable, or a power of two: the entry's data will
                start at an offset divisible by it (e.g. 4096 for page-aligned
                native libraries that are mapped straight from the archive).
            date_time: Modification time to record (defaults to now).
            mode: Unix permission/mode bits (defaults to 0o644).

        Returns:
            The record written.

        Raises:
            ZipClosedError: If the archive is closed.
            ZipAlignmentError: If alignment is not 0 or a power of two.
            ZipUnsupportedFeature: If compression method is not supported.
            ZipFormatError: If the entry name is invalid.
        """
        with self._lock:
            self._check_writable()

            raw_name, name, flags = self._encode_name(path)
            if isinstance(data, str):
                data = data.encode("utf-8")
            data = bytes(data)
            compression = ZipCompression.parse(compression)
            if compression == ZipCompression.UNSUPPORTED:
                raise ZipUnsupportedFeature("Cannot write entries with unsupported compression")
            alignment = validate_alignment(alignment)

            if mode is None:
                mode = DEFAULT_FILE_MODE
            elif mode & _FILE_TYPE_MASK == 0:
                mode |= _REGULAR_FILE

            entry_crc32 = crc32(data)
            compressed_data = compress(compression, data)
            mod_date, mod_time = timestamp_to_dos_datetime(date_time or datetime.now())

            template = ZipEntry(
                index=0,
                raw_name=raw_name,
                name=name,
                compression_method=compression.method_id,
                compressed_size=len(compressed_data),
                uncompressed_size=len(data),
                crc32=entry_crc32,
                flags=flags,
                mod_time=mod_time,
                mod_date=mod_date,
                local_header_offset=0,
                version_made_by=VERSION_MADE_BY_DEFAULT,
                version_needed=_VERSION_NEEDED[compression],
                external_attrs=(mode & 0xFFFF) << 16,
            )
            return self._write_record(template, compressed_data, alignment)

    def write_dir(
        self,
        path: Union[str, bytes],
        date_time: Optional[datetime] = None,
        mode: Optional[int] = None,
    ) -> ZipEntry:
        """Add a directory entry: a zero-size stored entry whose name ends with '/'.

        Raises:
            ZipClosedError: If the archive is closed.
            ZipFormatError: If the name is invalid.
        """
        with self._lock:
            self._check_writable()

            raw_name, name, flags = self._encode_name(path)
            if not raw_name.endswith(b"/"):
                raw_name += b"/"
                name += "/"
            mode = directory_mode(DEFAULT_DIR_MODE if mode is None else mode)
            mod_date, mod_time = timestamp_to_dos_datetime(date_time or datetime.now())

            template = ZipEntry(
                index=0,
                raw_name=raw_name,
                name=name,
                compression_method=ZipCompression.NONE.method_id,
                compressed_size=0,
                uncompressed_size=0,
                crc32=0,
                flags=flags,
                mod_time=mod_time,
                mod_date=mod_date,
                local_header_offset=0,
                version_made_by=VERSION_MADE_BY_DEFAULT,
                version_needed=VERSION_DEFAULT,
                external_attrs=((mode & 0xFFFF) << 16) | MSDOS_DIR_ATTR,
            )
            return self._write_record(template, b"")

    def set_comment(self, comment: Union[bytes, str]) -> None:
        """Set the archive comment written on close.

        Raises:
            ZipFormatError: If the comment is longer than 65,535 bytes.
        """
        with self._lock:
            self._check_writable()
            if isinstance(comment, str):
                comment = comment.encode("utf-8")
            if len(comment) > MAX_COMMENT_SIZE:
                raise ZipFormatError(
                    f"Archive comment too long: {len(comment)} bytes (max {MAX_COMMENT_SIZE})"
                )
            self._comment = bytes(comment)

    def get_comment(self) -> bytes:
        self._check_open()
        return self._comment

    def delete_entry(self, path: Union[str, bytes], fill_void: bool = False) -> None:
        """Remove the first entry with the given name.

        Args:
            path: Entry name.
            fill_void: If True, zero the entry's bytes in place and keep the
                file layout (other entries keep their offsets and alignment).
                Otherwise rebuild the archive without the entry.

        Raises:
            ZipEntryNotFound: If no entry has that name.
        """
        from .deletion import fill_void as fill_void_entry, rebuild

        if fill_void:
            fill_void_entry(self, path)
        else:
            rebuild(self, [path])

    def delete_entries(self, *paths: Union[str, bytes]) -> None:
        """Remove several entries with a single rebuild.

        Raises:
            ZipEntryNotFound: If any name is missing; nothing is removed then.
        """
        from .deletion import rebuild

        rebuild(self, list(paths))

    @property
    def entries(self) -> tuple[ZipEntry, ...]:
        """Records that will make up the central directory."""
        self._check_open()
        return tuple(self._pending_entries)

    def get_entry_count(self) -> int:
        self._check_open()
        return len(self._pending_entries)

    def get_entry_names(self) -> list[str]:
        self._check_open()
        return [entry.name for entry in self._pending_entries]

    @property
    def current_offset(self) -> int:
        self._check_open()
        return self._current_offset

    @property
    def closed(self) -> bool:
        return self._closed

    def _pack_central_directory(self) -> bytes:
        """Build the central directory containing all entry headers."""
        directory = b"".join(
            pack_central_directory_header(entry.with_index(index))
            for index, entry in enumerate(self._pending_entries)
        )
        if len(directory) > MAX_CD_SIZE:
            raise ZipUnsupportedFeature("Central directory exceeds 4 GiB (ZIP64 not supported)")
        return directory

    def _directory_offset(self, size: int) -> int:
        """Where a central directory plus end record of ``size`` bytes goes.

        Entries written since the last directory push it to the cursor.
        Otherwise it reuses the old directory's slot: ending where the old end
        record ended when it fits there, so the archive keeps its length, or
        starting where the old directory started.
        """
        if self._directory_slot is None:
            return self._current_offset
        start, end = self._directory_slot
        if size <= end - start:
            return end - size
        return start

    def _finalize(self) -> int:
        """Emit the central directory and EOCD.

        Anything left in the sink beyond the new end record is cut off.
        The cursor is left at the start of the directory slot so that further
        entries (after a rebuild) overwrite it; that offset is returned.
        """
        directory = self._pack_central_directory()
        record_size = len(pack_eocd(0, 0, 0, self._comment))
        cd_offset = self._directory_offset(len(directory) + record_size)
        if cd_offset > MAX_CD_OFFSET:
            raise ZipUnsupportedFeature("Central directory offset exceeds 4 GiB (ZIP64 not supported)")
        record = pack_eocd(len(self._pending_entries), len(directory), cd_offset, self._comment)

        gap_start = cd_offset
        if self._directory_slot is not None:
            gap_start = self._directory_slot[0]
        end = cd_offset + len(directory) + len(record)

        with io_context("write central directory", gap_start):
            self._file.seek(gap_start)
            # Leftovers of the previous directory
            write_all(self._file, b"\x00" * (cd_offset - gap_start))
            write_all(self._file, directory)
            write_all(self._file, record)
        with io_context("truncate archive", end):
            self._file.truncate(end)
            self._file.flush()
        logger.debug(
            "Finalized archive: %d entries, central directory %d bytes at %d",
            len(self._pending_entries),
            len(directory),
            cd_offset,
        )
        self._directory_slot = (gap_start, end)
        self._current_offset = gap_start
        return gap_start

    def _release(self) -> None:
        if self._should_close and self._file:
            self._file.close()
        self._file = None

    def close(self) -> None:
        """Write central directory and EOCD, then close the archive."""
        with self._lock:
            if self._closed:
                return
            try:
                if not self._failed:
                    self._finalize()
            finally:
                self._release()
                self._closed = True

    def to_bytes(self) -> bytes:
        """Finalize the archive and return its complete content.

        The writer is closed afterwards.
        """
        with self._lock:
            self._check_writable()
            try:
                self._finalize()
                with io_context("read archive", 0):
                    self._file.seek(0)
                    data = self._file.read()
            finally:
                self._release()
                self._closed = True
            return data

    def __enter__(self) -> "ZipWriter":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
