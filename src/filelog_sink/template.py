"""Template compiler and renderer.

Template syntax::

    "$time [$level] $message $metadata\n"
      │      │        │        │
      └──────┴────────┴────────┴── ``$`` + one or more of ``[a-z_]``

Everything that is not a placeholder (including a lone ``$``) is literal
text.  Format templates may only reference :data:`FORMAT_FIELDS`; path
templates accept any name because event metadata is merged into the path
context at render time.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from filelog_sink.errors import UnknownFieldError
from filelog_sink.models import CompiledTemplate, Placeholder, Segment, Text

FORMAT_FIELDS = frozenset(
    {"message", "level", "date", "year", "month", "day", "time", "hour", "min", "sec", "metadata"}
)

FORMAT = "format"
PATH = "path"

_PLACEHOLDER_RE = re.compile(r"\$([a-z_]+)")


def compile_template(source: str, kind: str = FORMAT) -> CompiledTemplate:
    """Compile *source* into a :class:`CompiledTemplate`.

    Parameters
    ----------
    source:
        The template string.
    kind:
        ``"format"`` (field names are validated) or ``"path"`` (any name).

    Raises
    ------
    UnknownFieldError
        If a format template references a field outside :data:`FORMAT_FIELDS`.
    """
    if kind not in (FORMAT, PATH):
        raise ValueError(f"Unknown template kind: {kind!r}")

    segments: list[Segment] = []
    pos = 0
    for match in _PLACEHOLDER_RE.finditer(source):
        name = match.group(1)
        if kind == FORMAT and name not in FORMAT_FIELDS:
            raise UnknownFieldError(name, source)
        if match.start() > pos:
            segments.append(Text(source[pos:match.start()]))
        segments.append(Placeholder(name))
        pos = match.end()
    if pos < len(source):
        segments.append(Text(source[pos:]))

    return CompiledTemplate(source=source, kind=kind, segments=tuple(segments))


def compile_optional(source: Optional[str], kind: str = PATH) -> Optional[CompiledTemplate]:
    """Like :func:`compile_template` but ``None`` and ``""`` compile to ``None``."""
    if not source:
        return None
    return compile_template(source, kind)


def render(template: CompiledTemplate, context: Mapping[str, Any]) -> str:
    """Render *template* with the field values in *context*.

    Absent fields render as the empty string; rendering never raises.
    """
    parts: list[str] = []
    for segment in template.segments:
        if isinstance(segment, Text):
            parts.append(segment.text)
        elif segment.name == "metadata" and template.kind == FORMAT:
            parts.append(render_metadata(context.get("metadata")))
        else:
            parts.append(to_text(context.get(segment.name)))
    return "".join(parts)


def render_metadata(metadata: Optional[Mapping[str, Any]]) -> str:
    """Render a metadata mapping as ``key=value;`` pairs in mapping order."""
    if not metadata:
        return ""
    return "".join(f"{key}={to_text(value)};" for key, value in metadata.items())


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return repr(value)
    except Exception:  # broken __repr__
        return f"<{type(value).__name__}>"
