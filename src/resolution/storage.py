"""Atomic file writes for the repository cache.

Bytes go to a uniquely named temporary file in the destination directory,
are fsynced, and are then moved over the final path with ``os.replace``.
Readers of the final path therefore see either the previous complete file or
the new complete file. On any failure or cancellation the temporary file is
removed and the final path is left untouched.
"""
from __future__ import annotations

import logging
import os
import tempfile
import threading
from typing import BinaryIO, Callable, Iterable, Iterator, Optional, Union

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, Timer

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, BinaryIO, Iterable[bytes]]


class WriteCancelled(Exception):
    """Raised from ``atomic_write`` when the cancel event is set mid-copy."""


def iter_chunks(source: Source, chunk_size: int = Constants.CHUNK_SIZE) -> Iterator[bytes]:
    """Yield byte chunks from bytes, a readable binary stream or an iterable."""
    if isinstance(source, (bytes, bytearray)):
        for offset in range(0, len(source), chunk_size):
            yield bytes(source[offset:offset + chunk_size])
        return
    read = getattr(source, "read", None)
    if callable(read):
        while True:
            chunk = read(chunk_size)
            if not chunk:
                return
            yield chunk
    else:
        for chunk in source:
            yield chunk


def _fsync_directory(directory: str) -> None:
    if not hasattr(os, "O_DIRECTORY"):
        return
    dir_fd = os.open(directory, os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def atomic_write(
    dest_path: Union[str, os.PathLike],
    source: Source,
    *,
    cancel: Optional[threading.Event] = None,
    on_progress: Optional[Callable[[int], None]] = None,
    chunk_size: int = Constants.CHUNK_SIZE,
) -> int:
    """Copy ``source`` to ``dest_path`` atomically.

    Args:
        dest_path: Final location; missing parent directories are created.
        source: Bytes, readable binary stream, or iterable of byte chunks.
        cancel: Checked between chunks; when set the copy is abandoned.
        on_progress: Called with the running byte count after each chunk.
        chunk_size: Read size for stream sources.

    Returns:
        Number of bytes written.

    Raises:
        WriteCancelled: ``cancel`` was set before the copy finished.
        OSError: Filesystem failure (permission denied, disk full, ...).
    """
    dest = os.fspath(dest_path)
    dest_dir = os.path.dirname(dest) or "."
    os.makedirs(dest_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=dest_dir, prefix=Constants.TEMP_PREFIX, suffix=Constants.TEMP_SUFFIX
    )
    written = 0
    try:
        with Timer() as t:
            with os.fdopen(fd, "wb") as out:
                for chunk in iter_chunks(source, chunk_size):
                    if cancel is not None and cancel.is_set():
                        raise WriteCancelled(dest)
                    if not chunk:
                        continue
                    out.write(chunk)
                    written += len(chunk)
                    if on_progress is not None:
                        on_progress(written)
                if cancel is not None and cancel.is_set():
                    raise WriteCancelled(dest)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmp_path, dest)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise

    try:
        _fsync_directory(dest_dir)
    except OSError as exc:
        # The rename already happened; only its durability is in doubt.
        logger.warning(
            "Could not fsync directory %s: %s",
            dest_dir,
            exc,
            extra=extra_context(
                event="cache_write",
                component="storage",
                outcome="dir_fsync_failed",
                target=dest,
            ),
        )

    if is_debug_enabled(logger):
        logger.debug(
            "Atomic write complete",
            extra=extra_context(
                event="cache_write",
                component="storage",
                outcome="success",
                bytes=written,
                duration_ms=t.duration_ms(),
                target=dest,
            ),
        )
    return written
