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

from __future__ import annotations

"""
Command-line interface for ZIPKIT (``zipkit``).

Supported commands (via ``python -m zipkit``):

- ``list``    : List entries in an archive
- ``info``    : Show a detailed table of entries
- ``cat``     : Write an entry's data to stdout
- ``add``     : Add files to an archive (appending to it if it exists)
- ``mkdir``   : Add a directory entry
- ``delete``  : Delete entries (rebuild, or zero-fill with --fill-void)
- ``comment`` : Show or set the archive comment

Example usages:

    # List entries
    python -m zipkit list archive.zip

    # Add a page-aligned, uncompressed native library
    python -m zipkit add app.zip build/libfoo.so --name lib/arm64/libfoo.so \\
        --compression none --align 4096

    # Remove an entry without moving any other entry
    python -m zipkit delete app.zip assets/old.png --fill-void
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import ZipCompression, ZipReader, ZipWriter, __version__
from .errors import ZipEntryNotFound, ZipError


def _print_error(message: str, exit_code: int = 1, suggestion: Optional[str] = None) -> None:
    """Print an error message to stderr and exit with the given code.

    Args:
        message: Error message to display.
        exit_code: Exit code to use.
        suggestion: Optional suggestion to help the user resolve the error.
    """
    sys.stderr.write(f"zipkit: {message}\n")
    if suggestion:
        sys.stderr.write(f"zipkit: Suggestion: {suggestion}\n")
    sys.exit(exit_code)


def _format_size(size_bytes: int) -> str:
    for unit in ("B", "KiB", "MiB"):
        if size_bytes < 1024:
            return f"{size_bytes} {unit}" if unit == "B" else f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} GiB"


def _cmd_list(archive: Path) -> None:
    """List all entries in an archive, one per line, in physical order."""
    with ZipReader(archive) as z:
        for name in z.get_entry_names():
            print(name)


def _cmd_info(archive: Path) -> None:
    """Print a table with metadata for each entry."""
    with ZipReader(archive) as z:
        print(f"Archive: {archive}")
        print(f"Entries: {z.get_entry_count()}  Size: {_format_size(z.file_size)}")
        comment = z.get_raw_comment()
        if comment:
            print(f"Comment: {comment.decode('utf-8', errors='replace')}")
        print()
        print(f"{'#':>5}  {'Size':>10}  {'Packed':>10}  {'Method':<8}  {'CRC32':<8}  {'Offset':>10}  Name")
        for handle in z:
            method = handle.compression.name.lower()
            print(
                f"{handle.index:>5}  {handle.size:>10}  {handle.compressed_size:>10}  "
                f"{method:<8}  {handle.crc32:08x}  {handle.data_offset:>10}  {handle.name}"
            )


def _cmd_cat(archive: Path, name: str, raw: bool = False) -> None:
    """Write an entry's data to stdout."""
    with ZipReader(archive) as z:
        handle = z.open_entry(name, raw=raw)
        if handle is None:
            raise ZipEntryNotFound(f"Entry not found: {name!r}")
        data = handle.read()
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def _cmd_add(
    archive: Path,
    files: List[Path],
    name: Optional[str] = None,
    compression: str = "deflate",
    alignment: int = 0,
    create: bool = False,
) -> None:
    """Add files to an archive.

    An existing archive is appended to unless ``create`` is set, in which
    case it is replaced by a new one.
    """
    if name is not None and len(files) != 1:
        _print_error("--name can only be used with a single file", exit_code=2)

    for source in files:
        if not source.is_file():
            _print_error(f"Source file not found: {source}", exit_code=2)

    append = archive.exists() and not create
    with ZipWriter(archive, append=append) as z:
        for source in files:
            entry_name = name if name is not None else source.name
            z.write_entry(
                entry_name,
                source.read_bytes(),
                compression=ZipCompression.parse(compression),
                alignment=alignment,
            )
            print(f"added: {entry_name}")


def _cmd_mkdir(archive: Path, path: str) -> None:
    """Add a directory entry to an archive."""
    with ZipWriter(archive, append=archive.exists()) as z:
        entry = z.write_dir(path)
        print(f"added: {entry.name}")


def _cmd_delete(archive: Path, names: List[str], fill_void: bool = False) -> None:
    """Delete entries from an archive."""
    if not archive.exists():
        _print_error(f"Archive not found: {archive}", exit_code=2)

    with ZipWriter(archive, append=True) as z:
        if fill_void:
            for name in names:
                z.delete_entry(name, fill_void=True)
        else:
            z.delete_entries(*names)
    for name in names:
        print(f"deleted: {name}")


def _cmd_comment(archive: Path, text: Optional[str] = None) -> None:
    """Show the archive comment, or replace it when text is given."""
    if text is None:
        with ZipReader(archive) as z:
            print(z.get_raw_comment().decode("utf-8", errors="replace"))
        return

    if not archive.exists():
        _print_error(f"Archive not found: {archive}", exit_code=2)
    with ZipWriter(archive, append=True) as z:
        z.set_comment(text)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog="zipkit",
        description="ZIPKIT - classic ZIP archive engine (library and CLI).",
    )
    parser.add_argument("--version", action="version", version=f"zipkit {__version__}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log parsing and writing details to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # list
    p_list = subparsers.add_parser("list", help="List entries in an archive")
    p_list.add_argument("archive", type=Path, help="Path to the ZIP archive")

    # info
    p_info = subparsers.add_parser("info", help="Show detailed info about archive entries")
    p_info.add_argument("archive", type=Path, help="Path to the ZIP archive")

    # cat
    p_cat = subparsers.add_parser("cat", help="Write an entry's data to stdout")
    p_cat.add_argument("archive", type=Path, help="Path to the ZIP archive")
    p_cat.add_argument("name", help="Entry name")
    p_cat.add_argument(
        "--raw",
        action="store_true",
        help="Write the stored bytes without decompressing or verifying them",
    )

    # add
    p_add = subparsers.add_parser("add", help="Add files to an archive")
    p_add.add_argument("archive", type=Path, help="Path to the ZIP archive (created if missing)")
    p_add.add_argument("files", type=Path, nargs="+", help="Files to add")
    p_add.add_argument("--name", default=None, help="Entry name (single file only; default: file name)")
    p_add.add_argument(
        "--compression",
        default="deflate",
        choices=["none", "stored", "deflate", "bzip2", "zstd"],
        help="Compression method (default: deflate)",
    )
    p_add.add_argument(
        "--align",
        type=int,
        default=0,
        metavar="BYTES",
        help="Align entry data to a power-of-two boundary (default: 0, disabled)",
    )
    p_add.add_argument(
        "--create",
        action="store_true",
        help="Replace an existing archive instead of appending to it",
    )

    # mkdir
    p_mkdir = subparsers.add_parser("mkdir", help="Add a directory entry")
    p_mkdir.add_argument("archive", type=Path, help="Path to the ZIP archive (created if missing)")
    p_mkdir.add_argument("path", help="Directory name within the archive")

    # delete
    p_delete = subparsers.add_parser("delete", help="Delete entries from an archive")
    p_delete.add_argument("archive", type=Path, help="Path to the ZIP archive")
    p_delete.add_argument("names", nargs="+", help="Entry names to delete")
    p_delete.add_argument(
        "--fill-void",
        action="store_true",
        help="Zero the entries in place instead of rebuilding the archive",
    )

    # comment
    p_comment = subparsers.add_parser("comment", help="Show or set the archive comment")
    p_comment.add_argument("archive", type=Path, help="Path to the ZIP archive")
    p_comment.add_argument("text", nargs="?", default=None, help="New comment")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the ZIPKIT CLI.

    This function is invoked when running:

        python -m zipkit ...

    or, via the console script:

        zipkit ...
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(levelname)s: %(message)s",
    )

    try:
        if args.command == "list":
            _cmd_list(args.archive)
        elif args.command == "info":
            _cmd_info(args.archive)
        elif args.command == "cat":
            _cmd_cat(args.archive, args.name, raw=args.raw)
        elif args.command == "add":
            _cmd_add(
                args.archive,
                args.files,
                name=args.name,
                compression=args.compression,
                alignment=args.align,
                create=args.create,
            )
        elif args.command == "mkdir":
            _cmd_mkdir(args.archive, args.path)
        elif args.command == "delete":
            _cmd_delete(args.archive, args.names, fill_void=args.fill_void)
        elif args.command == "comment":
            _cmd_comment(args.archive, args.text)
        else:
            parser.error(f"Unknown command: {args.command!r}")
    except ZipEntryNotFound as e:
        _print_error(str(e), exit_code=1, suggestion=f"Run 'zipkit list {args.archive}' to see entry names.")
    except ZipError as e:
        _print_error(str(e), exit_code=1)
    except FileNotFoundError as e:
        path = e.filename if e.filename is not None else str(e)
        _print_error(
            f"File not found: {path}",
            exit_code=2,
            suggestion=f"Check that the file exists and the path is correct: {path}",
        )
    except PermissionError as e:
        path = e.filename if e.filename is not None else str(e)
        _print_error(f"Permission denied: {path}", exit_code=2)
    except KeyboardInterrupt:
        _print_error("Interrupted by user", exit_code=130)


if __name__ == "__main__":
    main()
