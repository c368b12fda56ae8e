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
ZIPKIT - classic ZIP archive engine.

Random-access reading of classic (non-ZIP64) ZIP archives, writing with
Store, Deflate, Bzip2 and Zstd compression and optional data alignment,
appending to existing archives, and deleting entries either in place
(zero-fill) or by rebuilding the archive.
"""

from .codec import ZipCompression
from .entry import ZipEntryHandle
from .errors import (
    ClosedHandle,
    EntryNotFound,
    InvalidAlignment,
    IntegrityMismatch,
    IOFailure,
    MalformedArchive,
    UnsupportedCompression,
    UseAfterClose,
    ZipAlignmentError,
    ZipClosedError,
    ZipCompressionError,
    ZipCrcError,
    ZipEntryNotFound,
    ZipError,
    ZipFormatError,
    ZipIOError,
    ZipUnsupportedFeature,
)
from .reader import ZipReader
from .structures import ZipEntry
from .writer import ZipWriter

__all__ = [
    "ZipReader",
    "ZipWriter",
    "ZipEntryHandle",
    "ZipEntry",
    "ZipCompression",
    "ZipError",
    "ZipFormatError",
    "ZipUnsupportedFeature",
    "ZipCrcError",
    "ZipCompressionError",
    "ZipClosedError",
    "ZipAlignmentError",
    "ZipEntryNotFound",
    "ZipIOError",
    "MalformedArchive",
    "IntegrityMismatch",
    "UnsupportedCompression",
    "UseAfterClose",
    "ClosedHandle",
    "InvalidAlignment",
    "EntryNotFound",
    "IOFailure",
]

__version__ = "0.1.0"
