"""Dataclass models for log events, compiled templates and write results."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union


class Level(enum.IntEnum):
    """Event severity, ordered ``debug < info < warn < error``."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Union[str, "Level"]) -> "Level":
        """Return the level named by *value*.

        Accepts the four level names in any case, plus the stdlib
        ``logging`` spellings ``warning`` and ``critical``.

        Raises
        ------
        ValueError
            If *value* does not name a level.
        """
        if isinstance(value, Level):
            return value
        name = str(value).strip().lower()
        name = _ALIASES.get(name, name)
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None


_ALIASES = {"warning": "warn", "critical": "error"}


@dataclass
class LogEvent:
    """A single log event as delivered by the dispatcher."""

    level: Level
    message: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Text:
    """Literal template text, copied verbatim."""

    text: str


@dataclass(frozen=True)
class Placeholder:
    """A ``$name`` field reference."""

    name: str


Segment = Union[Text, Placeholder]


@dataclass(frozen=True)
class CompiledTemplate:
    """Ordered sequence of segments produced by the template compiler.

    ``kind`` is ``"format"`` for line templates and ``"path"`` for file path
    templates; only format templates render ``$metadata`` as ``key=value;``
    pairs.
    """

    source: str
    kind: str
    segments: tuple[Segment, ...] = ()

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.segments if isinstance(s, Placeholder))


class WriteResult(enum.Enum):
    """Outcome of delivering one event to a sink."""

    WRITTEN = "written"
    FILTERED = "filtered"
    DISABLED = "disabled"
    DROPPED = "dropped"
