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
Custom exception classes for zipkit.

This module defines specific exception types for different error conditions
that can occur when reading, writing or editing ZIP archives.
"""

from typing import Optional


class ZipError(Exception):
    """Base exception class for all ZIP-related errors."""

    pass


class ZipFormatError(ZipError):
    """Raised when a ZIP file has an invalid format or structure.

    This exception is raised when:
    - The End of Central Directory record cannot be found
    - Required signatures are missing or incorrect
    - A header is truncated or points outside the archive
    """

    pass


class ZipUnsupportedFeature(ZipError):
    """Raised when encountering an unsupported ZIP feature.

    This exception is raised when:
    - Compression method is not supported
    - Encryption is used (not supported)
    - ZIP64 or multi-disk structures are required or encountered
    """

    pass


class ZipCrcError(ZipError):
    """Raised when the decompressed data of an entry fails its integrity check.

    The computed CRC32 (or the decompressed length) does not match the values
    stored in the archive. Only the failing read is affected; the archive
    handle remains usable.
    """

    pass


class ZipCompressionError(ZipError):
    """Raised when compression or decompression fails.

    This exception is raised when:
    - Compressed data is corrupted or truncated
    - The compression library reports an error
    """

    pass


class ZipClosedError(ZipError):
    """Raised when an archive handle (or an entry borrowed from it) is used after close."""

    pass


class ZipAlignmentError(ZipError, ValueError):
    """Raised when an entry alignment is not 0 or a power of two within range."""

    pass


class ZipEntryNotFound(ZipError, KeyError):
    """Raised by name-addressed operations when no entry has the given name.

    Lookups (``open_entry``, ``get_info``) return ``None`` instead of raising.
    """

    def __str__(self) -> str:
        return Exception.__str__(self)


class ZipIOError(ZipError):
    """Raised when the underlying storage fails.

    Attributes:
        operation: What the engine was doing ("read", "write", "seek", ...).
        offset: Byte offset in the archive where the operation was attempted.
    """

    def __init__(self, operation: str, offset: Optional[int], cause: Optional[BaseException] = None):
        self.operation = operation
        self.offset = offset
        location = f" at offset {offset}" if offset is not None else ""
        message = f"I/O failure during {operation}{location}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


# Names used by the format documentation
MalformedArchive = ZipFormatError
IntegrityMismatch = ZipCrcError
UnsupportedCompression = ZipUnsupportedFeature
UseAfterClose = ZipClosedError
ClosedHandle = ZipClosedError
InvalidAlignment = ZipAlignmentError
EntryNotFound = ZipEntryNotFound
IOFailure = ZipIOError
