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
ZIP archive reader implementation.

This module provides the ZipReader class, the archive index: it locates the
End of Central Directory record, parses the central directory into an
ordered table of ``ZipEntry`` records and serves random-access reads of
individual entries.
"""

import io
import logging
import os
import struct
import threading
from typing import BinaryIO, Iterator, Optional, Union

from .constants import (
    END_OF_CENTRAL_DIR_MAGIC,
    END_OF_CENTRAL_DIR_SIZE,
    EOCD_SEARCH_LIMIT,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_LOCATOR_SIZE,
)
from .entry import ZipEntryHandle, decode_entry, read_local_header, read_raw_data
from .errors import ZipClosedError, ZipEntryNotFound, ZipFormatError, ZipUnsupportedFeature
from .structures import EndOfCentralDirectory, ZipEntry, parse_central_directory_header, parse_eocd
from .utils import io_context, read_exact

logger = logging.getLogger(__name__)

EntryKey = Union[int, str, bytes]


class ZipReader:
    """Reader for classic ZIP archives.

    The central directory is parsed once, at construction; no entry data is
    read and no checksum is verified until an entry is read.

    Example:
        with ZipReader("archive.zip") as z:
            print(z.get_entry_names())
            data = z.open_entry("file.txt").read()
    """

    def __init__(self, file: Union[str, os.PathLike, bytes, bytearray, memoryview, BinaryIO]):
        """Initialize ZipReader with a path, an in-memory archive or a file-like object.

        Args:
            file: Path to a ZIP file, the archive's bytes, or a seekable binary
                file-like object (borrowed: the reader never closes it).

        Raises:
            ZipFormatError: If the data is not a valid ZIP archive.
            ZipUnsupportedFeature: If the archive uses ZIP64 or spans several disks.
        """
        if hasattr(file, "__fspath__"):
            file = os.fspath(file)

        if isinstance(file, (bytes, bytearray, memoryview)):
            self._file = io.BytesIO(bytes(file))
            self._should_close = True
        elif isinstance(file, str):
            self._file = open(file, "rb")
            self._should_close = True
        else:
            for method in ("read", "seek", "tell"):
                if not hasattr(file, method):
                    raise ZipFormatError(f"File-like object must have a {method}() method")
            self._file = file
            self._should_close = False

        self._lock = threading.RLock()
        self._entries: list[ZipEntry] = []
        self._by_name: dict[str, int] = {}
        self._by_raw_name: dict[bytes, int] = {}
        self._data_offsets: dict[int, int] = {}
        self._eocd: Optional[EndOfCentralDirectory] = None
        self._eocd_offset: int = 0
        self._file_size: int = 0
        self._closed: bool = False

        try:
            self._parse_archive()
        except Exception:
            if self._should_close:
                self._file.close()
            self._file = None
            self._closed = True
            raise

    def _find_eocd(self) -> EndOfCentralDirectory:
        """Find and parse the End of Central Directory record.

        Scans backward within the last 65,557 bytes (fixed record plus the
        largest possible comment). A candidate whose comment runs exactly to
        the end of the data wins; otherwise the last complete candidate is used.

        Raises:
            ZipFormatError: If no EOCD record can be found.
            ZipUnsupportedFeature: If the archive is ZIP64 or multi-disk.
        """
        with io_context("locate end of central directory"):
            self._file.seek(0, io.SEEK_END)
            self._file_size = self._file.tell()
            if self._file_size < END_OF_CENTRAL_DIR_SIZE:
                raise ZipFormatError(
                    f"File too small to be a ZIP archive: {self._file_size} bytes"
                )
            max_scan = min(EOCD_SEARCH_LIMIT, self._file_size)
            base = self._file_size - max_scan
            self._file.seek(base)
            data = read_exact(self._file, max_scan)

        chosen = None
        fallback = None
        pos = data.rfind(END_OF_CENTRAL_DIR_MAGIC)
        while pos != -1:
            if pos + END_OF_CENTRAL_DIR_SIZE <= len(data):
                comment_len = struct.unpack_from("<H", data, pos + 20)[0]
                if pos + END_OF_CENTRAL_DIR_SIZE + comment_len == len(data):
                    chosen = pos
                    break
                if fallback is None:
                    fallback = pos
            pos = data.rfind(END_OF_CENTRAL_DIR_MAGIC, 0, pos)

        if chosen is None:
            if fallback is None:
                raise ZipFormatError("End of Central Directory record not found")
            logger.warning(
                "EOCD comment length does not reach end of file; using record at offset %d",
                base + fallback,
            )
            chosen = fallback

        self._eocd_offset = base + chosen
        eocd = parse_eocd(data[chosen:])
        logger.debug(
            "EOCD at offset %d: %d entries, central directory %d bytes at %d",
            self._eocd_offset,
            eocd.cd_records_total,
            eocd.cd_size,
            eocd.cd_offset,
        )

        if chosen >= ZIP64_LOCATOR_SIZE:
            locator_sig = struct.unpack_from("<I", data, chosen - ZIP64_LOCATOR_SIZE)[0]
            if locator_sig == ZIP64_END_OF_CENTRAL_DIR_LOCATOR:
                raise ZipUnsupportedFeature("ZIP64 archives are not supported")
        if eocd.disk_num != 0 or eocd.cd_disk != 0 or eocd.cd_records_on_disk != eocd.cd_records_total:
            raise ZipUnsupportedFeature("Multi-volume archives are not supported")

        return eocd

    def _parse_central_directory(self) -> None:
        """Parse the central directory into the ordered entry table.

        Raises:
            ZipFormatError: If the central directory cannot be parsed.
        """
        eocd = self._eocd
        if eocd.cd_offset + eocd.cd_size > self._eocd_offset:
            raise ZipFormatError(
                f"Central directory extends beyond its end record: offset {eocd.cd_offset}, "
                f"size {eocd.cd_size} (EOCD at {self._eocd_offset})"
            )

        with io_context("read central directory", eocd.cd_offset):
            self._file.seek(eocd.cd_offset)
            for index in range(eocd.cd_records_total):
                header = parse_central_directory_header(self._file)
                entry = ZipEntry.from_central_header(index, header)
                self._entries.append(entry)
                # Duplicate names resolve to the first physical entry
                self._by_name.setdefault(entry.name, index)
                self._by_raw_name.setdefault(entry.raw_name, index)

        logger.debug("Parsed %d central directory entries", len(self._entries))

    def _parse_archive(self) -> None:
        """Parse the entire archive structure."""
        self._eocd = self._find_eocd()
        self._parse_central_directory()

    def _check_open(self) -> None:
        if self._closed:
            raise ZipClosedError("Archive is closed")

    def _resolve(self, key: EntryKey) -> Optional[ZipEntry]:
        if isinstance(key, bool):
            raise TypeError("Entry key must be an index or a name, not bool")
        if isinstance(key, int):
            if 0 <= key < len(self._entries):
                return self._entries[key]
            return None
        if isinstance(key, (bytes, bytearray)):
            index = self._by_raw_name.get(bytes(key))
        elif isinstance(key, str):
            index = self._by_name.get(key)
        else:
            raise TypeError(f"Entry key must be an index or a name, not {type(key).__name__}")
        return None if index is None else self._entries[index]

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def file_size(self) -> int:
        return self._file_size

    @property
    def central_directory_offset(self) -> int:
        return self._eocd.cd_offset

    @property
    def entries(self) -> tuple[ZipEntry, ...]:
        """Point-in-time snapshot of all entry records in physical order."""
        self._check_open()
        return tuple(self._entries)

    def get_entry_count(self) -> int:
        self._check_open()
        return len(self._entries)

    def get_entry_names(self) -> list[str]:
        """List all entry names.

        The order is not part of the contract; use ``entries`` when the
        physical order matters.
        """
        self._check_open()
        return [entry.name for entry in self._entries]

    def get_raw_comment(self) -> bytes:
        """Return the archive comment exactly as stored."""
        self._check_open()
        return self._eocd.comment

    def get_info(self, key: EntryKey) -> Optional[ZipEntry]:
        """Get the record for an entry by index, name or raw name.

        Returns:
            ZipEntry object if found, None otherwise.
        """
        self._check_open()
        return self._resolve(key)

    def open_entry(self, key: EntryKey, raw: bool = False) -> Optional[ZipEntryHandle]:
        """Open an entry by index or name.

        Args:
            key: Physical index, entry name, or raw name bytes.
            raw: If True, ``read()`` returns the stored bytes without
                decompression or CRC verification.

        Returns:
            ZipEntryHandle, or None if the index is out of range or no entry
            has that name.
        """
        self._check_open()
        entry = self._resolve(key)
        if entry is None:
            return None
        return ZipEntryHandle(self, entry, raw=raw)

    def open_entry_raw(self, key: EntryKey) -> Optional[ZipEntryHandle]:
        return self.open_entry(key, raw=True)

    def read(self, key: EntryKey, raw: bool = False) -> bytes:
        """Read an entry by index or name.

        Raises:
            ZipEntryNotFound: If no entry matches.
        """
        self._check_open()
        entry = self._resolve(key)
        if entry is None:
            raise ZipEntryNotFound(f"Entry not found: {key!r}")
        return self.read_entry(entry, raw=raw)

    def data_offset(self, entry: ZipEntry) -> int:
        """Absolute offset of an entry's data, resolved from its local header."""
        with self._lock:
            self._check_open()
            offset = self._data_offsets.get(entry.local_header_offset)
            if offset is None:
                header = read_local_header(self._file, entry, self._file_size)
                offset = entry.local_header_offset + header.size
                self._data_offsets[entry.local_header_offset] = offset
            return offset

    def read_entry(self, entry: ZipEntry, raw: bool = False) -> bytes:
        """Read an entry's data.

        Raises:
            ZipClosedError: If the archive is closed.
            ZipUnsupportedFeature: If compression method is not supported.
            ZipCompressionError: If decompression fails.
            ZipCrcError: If CRC32 validation fails.
        """
        with self._lock:
            self._check_open()
            data_offset = self.data_offset(entry)
            raw_data = read_raw_data(self._file, entry, data_offset, self._file_size)

        if raw:
            return raw_data
        return decode_entry(entry, raw_data)

    def iter_entries(self, raw: bool = False) -> Iterator[ZipEntryHandle]:
        """Iterate over handles for a snapshot of the entries taken now."""
        entries = self.entries
        return (ZipEntryHandle(self, entry, raw=raw) for entry in entries)

    def __iter__(self) -> Iterator[ZipEntryHandle]:
        return self.iter_entries()

    def __len__(self) -> int:
        return self.get_entry_count()

    def close(self) -> None:
        """Close the archive. Calling close more than once is harmless."""
        with self._lock:
            if self._closed:
                return
            if self._should_close and self._file:
                self._file.close()
            self._file = None
            self._closed = True

    def __enter__(self) -> "ZipReader":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
