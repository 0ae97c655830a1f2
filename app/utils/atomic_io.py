"""Drummer - Atomic file promotion.

Publish rule for every file that leaves a workspace or an upload stream:
1. Write to a temp path next to the final path
2. Flush + fsync
3. Rename temp -> final (the publish boundary)

The final path either holds the complete file or does not exist. A failure
at any step removes the temp file before the error propagates, so source and
destination may sit on different volumes without risking a partial result.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"
CHUNK_SIZE = 65536


def _write_all(fd: int, data: bytes) -> None:
    """Write all bytes to a file descriptor, handling short writes and EINTR.

    Raises:
        OSError: If write fails or returns 0 bytes unexpectedly.
    """
    view = memoryview(data)
    while view:
        try:
            written = os.write(fd, view)
        except InterruptedError:
            continue
        if written == 0:
            raise OSError("os.write() returned 0 bytes unexpectedly")
        view = view[written:]


def _fsync_directory(dir_path: Path) -> None:
    """Best-effort fsync on a directory so the rename survives a crash."""
    try:
        fd = os.open(dir_path, os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except (OSError, AttributeError):
        # O_DIRECTORY is missing on some platforms
        pass


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Failed to remove temp file %s", path, exc_info=True)


def _temp_path_for(final_path: Path, temp_suffix: str) -> Path:
    return final_path.with_name(final_path.name + temp_suffix)


def _publish_chunks(chunks, final_path: Path, temp_suffix: str) -> int:
    """Write chunks to a temp sibling of final_path, then rename into place.

    Args:
        chunks: Iterable of bytes.
        final_path: Destination path.
        temp_suffix: Suffix for the temp sibling.

    Returns:
        Total bytes written.
    """
    temp_path = _temp_path_for(final_path, temp_suffix)
    final_path.parent.mkdir(parents=True, exist_ok=True)

    total = 0
    fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        try:
            for chunk in chunks:
                _write_all(fd, chunk)
                total += len(chunk)
            os.fsync(fd)
        finally:
            os.close(fd)
        os.replace(temp_path, final_path)
    except BaseException:
        _remove_quietly(temp_path)
        raise

    _fsync_directory(final_path.parent)
    return total


def atomic_copy_file(
    source_path: str | Path,
    final_path: str | Path,
    temp_suffix: str = TEMP_SUFFIX,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """Copy source to final_path with all-or-nothing semantics.

    Works across filesystems (no rename of the source is attempted).

    Args:
        source_path: File to copy.
        final_path: Destination; parent directories are created.
        temp_suffix: Suffix for the temporary sibling file.
        chunk_size: Read buffer size.

    Returns:
        Bytes copied.

    Raises:
        FileNotFoundError: If the source does not exist.
        OSError: If the copy, fsync or rename fails. No file is left at
            final_path (or its temp sibling) in that case.
    """
    source_path = Path(source_path)
    final_path = Path(final_path)

    if not source_path.is_file():
        raise FileNotFoundError(f"Source file not found: {source_path}")

    with open(source_path, "rb") as src:
        return _publish_chunks(
            iter(lambda: src.read(chunk_size), b""), final_path, temp_suffix
        )


def atomic_stream_to_file(
    stream: BinaryIO,
    final_path: str | Path,
    temp_suffix: str = TEMP_SUFFIX,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """Write a file-like object to final_path with all-or-nothing semantics.

    Used for upload ingestion.

    Args:
        stream: Object with a read(size) method returning bytes (or str).
        final_path: Destination; parent directories are created.
        temp_suffix: Suffix for the temporary sibling file.
        chunk_size: Read buffer size.

    Returns:
        Total bytes written.
    """

    def _chunks():
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                return
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            yield chunk

    return _publish_chunks(_chunks(), Path(final_path), temp_suffix)


def cleanup_orphan_temp_files(directory: str | Path, temp_suffix: str = TEMP_SUFFIX) -> int:
    """Remove temp files a crash left behind in a directory.

    Called during startup. Only the top level of the directory is scanned.

    Args:
        directory: Directory to scan.
        temp_suffix: Suffix pattern to match.

    Returns:
        Number of files removed.
    """
    directory = Path(directory)
    removed = 0

    if not directory.exists():
        return 0

    for temp_file in directory.glob(f"*{temp_suffix}"):
        if not temp_file.is_file():
            continue
        try:
            temp_file.unlink()
            removed += 1
        except OSError:
            logger.warning("Failed to remove orphan temp file %s", temp_file, exc_info=True)

    return removed
