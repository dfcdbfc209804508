"""Filesystem traversal utilities for scanning directories."""

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from mediaindex.database.models import ParsedFilename

logger = logging.getLogger(__name__)


@dataclass
class FileInfo:
    path: Path
    parsed_filename: ParsedFilename
    size: int
    modified_at: float
    created_at: float


@dataclass
class DirectoryListing:
    """Regular files and subdirectories of one directory.

    ``readable`` is False when the directory could not be listed; callers
    must not treat the empty file list as authoritative then.
    """

    directory: Path
    files: list[FileInfo] = field(default_factory=list)
    subdirs: list[Path] = field(default_factory=list)
    readable: bool = True


def parse_filename(filename: str) -> ParsedFilename:
    if not filename:
        return ParsedFilename(full=filename, base=filename, extension=None)

    dot_index = filename.rfind(".")

    if dot_index <= 0 or dot_index == len(filename) - 1:
        return ParsedFilename(full=filename, base=filename.rstrip("."), extension=None)

    extension = filename[dot_index + 1 :].lower()
    base = filename[:dot_index]

    return ParsedFilename(full=filename, base=base, extension=extension)


def walk_directory(
    root: Path,
    recursive: bool = True,
    skip_dirs: set[Path] | None = None,
    max_path_length: int = 4096,
) -> Iterator[DirectoryListing]:
    """Yield one listing per directory, depth-first, starting at ``root``.

    Symlinked directories are never entered, and a ``(st_dev, st_ino)``
    visited set stops loops through bind mounts.
    """
    skip = {Path(p) for p in skip_dirs or ()}
    visited: set[tuple[int, int]] = set()
    yield from _walk(Path(root), recursive, skip, visited, max_path_length)


def _walk(
    directory: Path,
    recursive: bool,
    skip: set[Path],
    visited: set[tuple[int, int]],
    max_path_length: int,
) -> Iterator[DirectoryListing]:
    try:
        st = directory.stat()
    except OSError as e:
        logger.warning("Cannot stat directory %s: %s", directory, e)
        return

    key = (st.st_dev, st.st_ino)
    if key in visited:
        logger.info("Skipping already visited directory: %s", directory)
        return
    visited.add(key)

    listing = list_directory(directory, skip, max_path_length)
    yield listing

    if not recursive:
        return
    for subdir in listing.subdirs:
        yield from _walk(subdir, recursive, skip, visited, max_path_length)


def list_directory(
    directory: Path,
    skip: set[Path] | None = None,
    max_path_length: int = 4096,
) -> DirectoryListing:
    listing = DirectoryListing(directory=directory)
    skip = skip or set()

    try:
        with os.scandir(directory) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                try:
                    if entry.is_dir(follow_symlinks=False):
                        subdir = Path(entry.path)
                        if subdir in skip:
                            logger.debug("Skipping directory: %s", subdir)
                        else:
                            listing.subdirs.append(subdir)
                        continue
                except OSError as e:
                    logger.warning("Error inspecting %s: %s", entry.path, e)
                    continue

                file_info = _process_entry(entry, max_path_length)
                if file_info:
                    listing.files.append(file_info)
    except PermissionError:
        logger.warning("Permission denied scanning directory: %s", directory)
        listing.readable = False
    except OSError as e:
        logger.error("Error scanning directory %s: %s", directory, e)
        listing.readable = False

    return listing


def _process_entry(entry: os.DirEntry, max_path_length: int) -> FileInfo | None:
    try:
        if entry.is_symlink():
            return None

        if not entry.is_file(follow_symlinks=False):
            return None

        if len(entry.path) > max_path_length:
            logger.warning("Path too long, skipping: %s", entry.path)
            return None

        stat_result = entry.stat(follow_symlinks=False)
        return FileInfo(
            path=Path(entry.path),
            parsed_filename=parse_filename(entry.name),
            size=stat_result.st_size,
            modified_at=stat_result.st_mtime,
            created_at=get_created_at(stat_result),
        )

    except PermissionError:
        logger.warning("Permission denied: %s", entry.path)
        return None
    except FileNotFoundError:
        logger.warning("File disappeared during scan: %s", entry.path)
        return None
    except OSError as e:
        logger.error("Error processing %s: %s", entry.path, e)
        return None


def stat_file(path: Path) -> FileInfo:
    """Build a :class:`FileInfo` for a single path. Raises ``OSError``."""
    stat_result = path.stat()
    return FileInfo(
        path=path,
        parsed_filename=parse_filename(path.name),
        size=stat_result.st_size,
        modified_at=stat_result.st_mtime,
        created_at=get_created_at(stat_result),
    )


def get_created_at(stat_result: os.stat_result) -> float:
    """Birth time where the platform reports one, else the earlier of ctime and mtime."""
    try:
        return stat_result.st_birthtime
    except AttributeError:
        return min(stat_result.st_ctime, stat_result.st_mtime)
