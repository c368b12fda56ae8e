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
ZIP format constants including signatures, compression methods, flags, and limits.

This module defines all the constants used throughout zipkit for parsing
and writing classic (non-ZIP64) ZIP archives.
"""

# ZIP file signatures (magic numbers)
LOCAL_FILE_HEADER = 0x04034B50  # "PK\x03\x04"
CENTRAL_DIR_HEADER = 0x02014B50  # "PK\x01\x02"
END_OF_CENTRAL_DIR = 0x06054B50  # "PK\x05\x06"
ZIP64_END_OF_CENTRAL_DIR_LOCATOR = 0x07064B50  # "PK\x06\x07"
DATA_DESCRIPTOR = 0x08074B50  # "PK\x07\x08"

END_OF_CENTRAL_DIR_MAGIC = b"PK\x05\x06"

# Compression methods (on-disk ids)
COMP_STORED = 0  # No compression
COMP_DEFLATE = 8  # Raw deflate
COMP_BZIP2 = 12  # BZIP2 compression
COMP_ZSTD = 93  # Zstandard compression

# Compression method names (for API)
COMPRESSION_STORED = "stored"
COMPRESSION_DEFLATE = "deflate"
COMPRESSION_BZIP2 = "bzip2"
COMPRESSION_ZSTD = "zstd"

# General purpose bit flags
FLAG_ENCRYPTED = 0x0001  # File is encrypted
FLAG_DATA_DESCRIPTOR = 0x0008  # Data descriptor follows file data
FLAG_UTF8 = 0x0800  # UTF-8 encoding for filename/comment

# ZIP version constants
VERSION_DEFAULT = 20  # Default version needed to extract (deflate, directories)
VERSION_BZIP2 = 46  # Version needed to extract bzip2 entries
VERSION_ZSTD = 63  # Version needed to extract zstd entries
VERSION_MADE_BY_DEFAULT = 0x033F  # Made by: Unix, APPNOTE 6.3

# Host system stored in the upper byte of "version made by"
HOST_UNIX = 3

# Default unix modes written into the external attributes
DEFAULT_FILE_MODE = 0o100644  # regular file, rw-r--r--
DEFAULT_DIR_MODE = 0o040755  # directory, rwxr-xr-x
DIR_MODE_BIT = 0o040000
MSDOS_DIR_ATTR = 0x10

# Classic ZIP limits (32-bit)
MAX_FILE_SIZE = 0xFFFFFFFF  # 4 GiB - 1
MAX_ENTRIES = 0xFFFF  # 65535 entries
MAX_CD_SIZE = 0xFFFFFFFF  # 4 GiB - 1
MAX_CD_OFFSET = 0xFFFFFFFF  # 4 GiB - 1
MAX_COMMENT_SIZE = 0xFFFF  # archive and entry comments
MAX_NAME_SIZE = 0xFFFF

# Alignment padding extra field ("zipalign" layout: u16 alignment + zero bytes)
ALIGNMENT_EXTRA_FIELD_TAG = 0xD935
ALIGNMENT_EXTRA_FIELD_SIZE = 6  # tag + size + u16 alignment
MAX_ALIGNMENT = 0x8000

# Local file header size (fixed part)
LOCAL_FILE_HEADER_SIZE = 30

# Central directory header size (fixed part, excluding filename/extra/comment)
CENTRAL_DIR_HEADER_SIZE = 46

# End of central directory size (fixed part, excluding comment)
END_OF_CENTRAL_DIR_SIZE = 22

# ZIP64 locator size (fixed part)
ZIP64_LOCATOR_SIZE = 20

# Data descriptor sizes (with and without the optional signature)
DATA_DESCRIPTOR_SIZE = 16
DATA_DESCRIPTOR_SIZE_NO_SIG = 12

# EOCD search window: fixed record plus the largest possible comment
EOCD_SEARCH_LIMIT = END_OF_CENTRAL_DIR_SIZE + MAX_COMMENT_SIZE  # 65557
