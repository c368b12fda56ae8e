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
Compression codecs for ZIP entries.

Pure functions keyed by ``ZipCompression``; no state is shared between calls.
Deflate is the raw (headerless) stream mandated by the ZIP format, never the
zlib-wrapped variant.
"""

import bz2
import zlib
from enum import IntEnum
from typing import Union

import pyzstd

from .constants import (
    COMP_BZIP2,
    COMP_DEFLATE,
    COMP_STORED,
    COMP_ZSTD,
    COMPRESSION_BZIP2,
    COMPRESSION_DEFLATE,
    COMPRESSION_STORED,
    COMPRESSION_ZSTD,
)
from .errors import ZipCompressionError, ZipCrcError, ZipUnsupportedFeature


class ZipCompression(IntEnum):
    """Compression methods understood by the engine.

    The integer values are the stable codes exposed to callers; ``-1`` is
    reserved for entries whose on-disk method is unknown. Use ``method_id``
    for the value stored in ZIP headers.
    """

    UNSUPPORTED = -1
    NONE = 0
    DEFLATE = 1
    BZIP2 = 2
    ZSTD = 3

    @property
    def method_id(self) -> int:
        """On-disk compression method id."""
        try:
            return _METHOD_IDS[self]
        except KeyError:
            raise ZipUnsupportedFeature("Unsupported compression has no method id") from None

    @classmethod
    def from_method_id(cls, method_id: int) -> "ZipCompression":
        return _FROM_METHOD_IDS.get(method_id, cls.UNSUPPORTED)

    @classmethod
    def parse(cls, value: Union["ZipCompression", int, str]) -> "ZipCompression":
        """Accept a member, its integer code, or a method name such as ``"deflate"``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return _NAMES[value.strip().lower()]
            except KeyError:
                raise ZipUnsupportedFeature(f"Unsupported compression method: {value}") from None
        try:
            return cls(value)
        except ValueError:
            raise ZipUnsupportedFeature(f"Unsupported compression method: {value}") from None


_METHOD_IDS = {
    ZipCompression.NONE: COMP_STORED,
    ZipCompression.DEFLATE: COMP_DEFLATE,
    ZipCompression.BZIP2: COMP_BZIP2,
    ZipCompression.ZSTD: COMP_ZSTD,
}

_FROM_METHOD_IDS = {method_id: member for member, method_id in _METHOD_IDS.items()}

_NAMES = {
    "none": ZipCompression.NONE,
    "store": ZipCompression.NONE,
    COMPRESSION_STORED: ZipCompression.NONE,
    COMPRESSION_DEFLATE: ZipCompression.DEFLATE,
    "deflated": ZipCompression.DEFLATE,
    COMPRESSION_BZIP2: ZipCompression.BZIP2,
    COMPRESSION_ZSTD: ZipCompression.ZSTD,
    "zstandard": ZipCompression.ZSTD,
}


def compress(method: Union[ZipCompression, int, str], data: bytes) -> bytes:
    """Compress data using the specified method.

    Args:
        method: Compression method.
        data: Data to compress.

    Returns:
        Compressed data as bytes.

    Raises:
        ZipUnsupportedFeature: If compression method is not supported.
        ZipCompressionError: If the compression library fails.
    """
    method = ZipCompression.parse(method)

    if method == ZipCompression.NONE:
        return bytes(data)
    try:
        if method == ZipCompression.DEFLATE:
            compressor = zlib.compressobj(level=zlib.Z_DEFAULT_COMPRESSION, wbits=-zlib.MAX_WBITS)
            return compressor.compress(data) + compressor.flush()
        if method == ZipCompression.BZIP2:
            return bz2.compress(data)
        if method == ZipCompression.ZSTD:
            compressor = pyzstd.ZstdCompressor()
            return compressor.compress(data) + compressor.flush()
    except (zlib.error, ValueError, pyzstd.ZstdError) as e:
        raise ZipCompressionError(f"{method.name.lower()} compression failed: {e}") from e

    raise ZipUnsupportedFeature(f"Unsupported compression method: {method.name}")


def decompress(method: Union[ZipCompression, int, str], data: bytes, expected_size: int) -> bytes:
    """Decompress data using the specified method.

    Output is capped one byte past ``expected_size`` so that a stream
    inflating beyond the recorded size is detected without materializing it.

    Args:
        method: Compression method.
        data: Compressed bytes.
        expected_size: Uncompressed size recorded in the archive.

    Returns:
        Decompressed data as bytes.

    Raises:
        ZipUnsupportedFeature: If compression method is not supported.
        ZipCompressionError: If the stream is corrupt or truncated.
        ZipCrcError: If the stream inflates to a different size than expected.
    """
    method = ZipCompression.parse(method)
    limit = expected_size + 1

    if method == ZipCompression.NONE:
        out = bytes(data)
    elif method == ZipCompression.DEFLATE:
        try:
            decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
            out = decompressor.decompress(data, limit)
        except zlib.error as e:
            raise ZipCompressionError(f"Deflate decompression failed: {e}") from e
        if len(out) <= expected_size:
            if not decompressor.eof:
                raise ZipCompressionError("Deflate stream is truncated")
            if decompressor.unused_data:
                raise ZipCompressionError("Extra data after compressed stream")
    elif method == ZipCompression.BZIP2:
        try:
            decompressor = bz2.BZ2Decompressor()
            out = decompressor.decompress(data, limit)
        except (OSError, ValueError) as e:
            raise ZipCompressionError(f"Bzip2 decompression failed: {e}") from e
        if len(out) <= expected_size and not decompressor.eof:
            raise ZipCompressionError("Bzip2 stream is truncated")
    elif method == ZipCompression.ZSTD:
        try:
            decompressor = pyzstd.ZstdDecompressor()
            out = decompressor.decompress(data, limit)
        except pyzstd.ZstdError as e:
            raise ZipCompressionError(f"Zstd decompression failed: {e}") from e
        if len(out) <= expected_size and not decompressor.eof:
            raise ZipCompressionError("Zstd stream is truncated")
    else:
        raise ZipUnsupportedFeature(f"Unsupported compression method: {method.name}")

    if len(out) > expected_size:
        raise ZipCrcError(f"Size mismatch: stream inflates past the expected {expected_size} bytes")
    if len(out) < expected_size:
        raise ZipCrcError(f"Size mismatch: expected {expected_size} bytes, got {len(out)}")
    return out
