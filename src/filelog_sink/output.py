"""Rotation-aware append-only file writer.

RotatingFileWriter
    Holds at most one open handle.  Before every write it stats the target
    path and compares ``(st_dev, st_ino)`` with the identity recorded when
    the handle was opened::

        CLOSED ──ensure_open(path)──▶ OPEN ──write, same identity──▶ OPEN
          ▲                             │
          └──── identity changed / path changed / file gone ────────┘
                (close stale handle, reopen, then write)

    An outside tool that renames, deletes or recreates the file (e.g.
    ``logrotate``) therefore causes a reopen, and the write that detected it
    is the first write of the fresh file.  A truncation in place keeps the
    identity; append mode puts the next write at the new end of file.

    Every filesystem failure raises a :class:`~filelog_sink.errors.WriterError`
    and leaves the writer CLOSED.  Nothing is buffered or retried across
    calls.  The writer is not thread-safe; :class:`~filelog_sink.sink.FileSink`
    serialises access to it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import IO, Optional

from filelog_sink.config import OpenOptions
from filelog_sink.errors import (
    DirectoryCreateError,
    FileOpenError,
    StatError,
    WriteError,
)

logger = logging.getLogger(__name__)

FileIdentity = tuple[int, int]


def file_identity(path: str) -> Optional[FileIdentity]:
    """Return ``(st_dev, st_ino)`` of *path*, or ``None`` if it does not exist.

    Raises
    ------
    StatError
        On any other stat failure (permissions, I/O error).
    """
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise StatError(path, exc) from exc
    return (st.st_dev, st.st_ino)


class RotatingFileWriter:
    """Append text to a path, following it across external rotation.

    Parameters
    ----------
    options:
        File-open options; append mode is always used.
    """

    def __init__(self, options: Optional[OpenOptions] = None) -> None:
        self.options = options or OpenOptions()
        self._fh: Optional[IO[str]] = None
        self._identity: Optional[FileIdentity] = None
        self._path: Optional[str] = None

    # ── public API ──────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    @property
    def path(self) -> Optional[str]:
        """Path of the currently open file, if any."""
        return self._path

    @property
    def identity(self) -> Optional[FileIdentity]:
        return self._identity

    def ensure_open(self, path: str) -> None:
        """Open *path* for appending unless it is already the open file.

        Raises
        ------
        DirectoryCreateError, FileOpenError, StatError
            The writer stays closed.
        """
        if self._fh is not None and self._matches(path):
            return
        if self._fh is not None:
            logger.info("Reopening %s (file rotated or path changed)", path)
            self.close()
        self._open(path)

    def write(self, path: str, text: str) -> None:
        """Write *text* to *path*, reopening first if the file was rotated.

        Raises
        ------
        WriterError
            The event is lost and the writer is closed.
        """
        self.ensure_open(path)
        try:
            self._fh.write(text)
            if self.options.flush:
                self._fh.flush()
        except (OSError, ValueError) as exc:
            self.close()
            raise WriteError(path, exc) from exc

    def close(self) -> None:
        """Flush and close the open handle; no-op when closed."""
        fh = self._fh
        self._discard()
        if fh is not None:
            try:
                fh.close()
            except (OSError, ValueError) as exc:
                logger.warning("Error closing log file: %s", exc)

    # ── internal ────────────────────────────────────────────────────

    def _matches(self, path: str) -> bool:
        """True when *path* is the open path and still has the recorded identity."""
        if path != self._path:
            return False
        try:
            current = file_identity(path)
        except StatError:
            self.close()
            raise
        return current is not None and current == self._identity

    def _open(self, path: str) -> None:
        opts = self.options
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryCreateError(path, exc) from exc

        try:
            fh = open(
                path,
                "a",
                buffering=opts.buffering,
                encoding=opts.encoding,
                errors=opts.errors,
                newline=opts.newline,
            )
        except (OSError, LookupError, TypeError, ValueError) as exc:
            raise FileOpenError(path, exc) from exc

        try:
            identity = file_identity(path)
        except StatError:
            fh.close()
            raise
        if identity is None:
            fh.close()
            raise StatError(path, FileNotFoundError(f"{path} vanished after open"))

        self._fh = fh
        self._identity = identity
        self._path = path
        logger.info("Opened log file: %s", path)

    def _discard(self) -> None:
        self._fh = None
        self._identity = None
        self._path = None
