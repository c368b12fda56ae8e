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
Entry deletion for archives open in a ``ZipWriter``.

Two policies are provided:

- ``fill_void`` overwrites the entry's local header and data with zeros and
  drops it from the central directory. Nothing moves: every other entry
  keeps its offset (and therefore its alignment).
- ``rebuild`` writes the surviving entries into a staging archive and swaps
  it in only once it is complete. A failure part-way leaves the original
  archive untouched.
"""

import io
import logging
import os
import shutil
import tempfile
from dataclasses import replace
from typing import TYPE_CHECKING, BinaryIO, Iterable, Union

from .codec import ZipCompression, compress
from .constants import FLAG_DATA_DESCRIPTOR, FLAG_ENCRYPTED
from .entry import decode_entry, entry_span, read_local_header, read_raw_data
from .structures import LocalFileHeader, ZipEntry, find_alignment
from .utils import io_context, write_all

if TYPE_CHECKING:
    from .writer import ZipWriter

logger = logging.getLogger(__name__)

_ZERO_CHUNK_SIZE = 1024 * 1024


def _read_stored(f: BinaryIO, entry: ZipEntry, end: int) -> tuple[LocalFileHeader, bytes]:
    header = read_local_header(f, entry, end)
    data_offset = entry.local_header_offset + header.size
    return header, read_raw_data(f, entry, data_offset, end)


def fill_void(writer: "ZipWriter", path: Union[str, bytes]) -> None:
    """Zero out the first entry named ``path`` in place.

    Raises:
        ZipClosedError: If the writer is closed.
        ZipEntryNotFound: If no entry has that name.
    """
    with writer._lock:
        writer._check_writable()
        position = writer._find_pending(path)
        entry = writer._pending_entries[position]
        f = writer._file

        span = entry_span(f, entry, writer._current_offset)
        try:
            with io_context("zero-fill entry", entry.local_header_offset):
                f.seek(entry.local_header_offset)
                remaining = span
                while remaining > 0:
                    chunk = min(remaining, _ZERO_CHUNK_SIZE)
                    write_all(f, b"\x00" * chunk)
                    remaining -= chunk
        except Exception:
            writer._failed = True
            raise

        del writer._pending_entries[position]
        logger.info(
            "Zero-filled entry '%s': %d bytes at offset %d",
            entry.name,
            span,
            entry.local_header_offset,
        )


def _select_doomed(writer: "ZipWriter", paths: Iterable[Union[str, bytes]]) -> frozenset:
    """Positions of the entries to delete; each path claims its first unclaimed match."""
    doomed: set[int] = set()
    for path in paths:
        doomed.add(writer._find_pending(path, skip=frozenset(doomed)))
    return frozenset(doomed)


def _copy_entry(staged: "ZipWriter", source: BinaryIO, entry: ZipEntry, end: int) -> None:
    """Write one surviving entry into the staging archive."""
    header, raw_data = _read_stored(source, entry, end)
    alignment = find_alignment(header.extra)
    template = replace(entry, flags=entry.flags & ~FLAG_DATA_DESCRIPTOR)

    if entry.compression == ZipCompression.UNSUPPORTED or entry.flags & FLAG_ENCRYPTED:
        # Nothing to verify or re-encode: carry the stored bytes across
        logger.debug("Copying entry '%s' verbatim (method %d)", entry.name, entry.compression_method)
        staged._write_record(template, raw_data, alignment)
        return

    data = decode_entry(entry, raw_data)
    payload = compress(entry.compression, data)
    staged._write_record(replace(template, compressed_size=len(payload)), payload, alignment)


def rebuild(writer: "ZipWriter", paths: Iterable[Union[str, bytes]]) -> None:
    """Remove entries by rewriting the archive without them.

    Every surviving entry is read back, verified and written into a staging
    archive (a temporary file next to the target, or memory). The staging
    archive replaces the original only after it has been written completely:
    with ``os.replace`` for path-backed writers, by swapping buffers for
    in-memory ones, and by copying back for streams owned by the caller.

    Entry method, alignment, timestamp, mode and comment are preserved, as is
    the archive comment.

    Raises:
        ZipClosedError: If the writer is closed.
        ZipEntryNotFound: If any name is missing; nothing is changed then.
        ZipCrcError: If a surviving entry is corrupt; nothing is changed then.
    """
    from .writer import ZipWriter

    paths = list(paths)
    with writer._lock:
        writer._check_writable()
        doomed = _select_doomed(writer, paths)
        survivors = [
            entry for position, entry in enumerate(writer._pending_entries) if position not in doomed
        ]
        source = writer._file
        end = writer._current_offset

        temp_path = None
        if writer._path is not None:
            with io_context("create staging file"):
                fd, temp_path = tempfile.mkstemp(
                    prefix=".zipkit-", suffix=".tmp", dir=os.path.dirname(writer._path)
                )
                staging = os.fdopen(fd, "w+b")
        else:
            staging = io.BytesIO()

        try:
            staged = ZipWriter(staging)
            staged._comment = writer._comment
            for entry in survivors:
                _copy_entry(staged, source, entry, end)
            cd_offset = staged._finalize()
            entries = staged._pending_entries

            if temp_path is not None:
                with io_context("replace archive"):
                    shutil.copymode(writer._path, temp_path)
                    staging.flush()
                    os.fsync(staging.fileno())
                    staging.close()
                    source.close()
                    try:
                        os.replace(temp_path, writer._path)
                    finally:
                        writer._file = open(writer._path, "r+b")
                temp_path = None
            elif writer._should_close:
                writer._file = staging
                source.close()
            else:
                with io_context("copy rebuilt archive", 0):
                    source.seek(0)
                    write_all(source, staging.getvalue())
                    source.truncate()
        except Exception:
            if temp_path is not None:
                staging.close()
                try:
                    os.unlink(temp_path)
                except OSError as e:
                    logger.warning("Could not remove staging file %s: %s", temp_path, e)
            raise

        writer._pending_entries = list(entries)
        writer._current_offset = cd_offset
        writer._directory_slot = staged._directory_slot

        logger.info(
            "Rebuilt archive: removed %d entries, %d remain",
            len(doomed),
            len(entries),
        )
