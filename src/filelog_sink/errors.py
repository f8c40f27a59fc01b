"""Error taxonomy.

``UnknownFieldError`` is raised to the caller of ``configure``.  The
``WriterError`` family never leaves the sink: each one means the current
event is dropped and the writer is back in the closed state.
"""

from __future__ import annotations


class FileSinkError(Exception):
    """Base class for all sink errors."""


class UnknownFieldError(FileSinkError, ValueError):
    """A format template references a field outside the supported set."""

    def __init__(self, name: str, template: str) -> None:
        super().__init__(f"${name} is not a valid format field in {template!r}")
        self.name = name
        self.template = template


class WriterError(FileSinkError, OSError):
    """A filesystem operation of the rotation-aware writer failed."""

    action = "I/O"

    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(f"{self.action} failed for {path}: {cause}")
        self.path = path
        self.cause = cause


class DirectoryCreateError(WriterError):
    action = "mkdir"


class FileOpenError(WriterError):
    action = "open"


class StatError(WriterError):
    action = "stat"


class WriteError(WriterError):
    action = "write"
