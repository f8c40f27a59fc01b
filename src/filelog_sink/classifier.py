"""Classify raw NDJSON lines into log events.

Classification pipeline::

    raw line
      │
      ├─ blank line            → None (skipped silently)
      ├─ JSON parse failure    → None (warning logged)
      ├─ not an object         → None (warning logged)
      ├─ bad level / message / metadata / timestamp → None (warning logged)
      └─ valid                 → LogEvent

Accepted line shape::

    {"level": "info", "message": "...", "timestamp": "2024-03-05T10:00:00.250",
     "metadata": {"tag": "audit"}}

``timestamp`` (ISO 8601) and ``metadata`` are optional; a missing timestamp
means "now" in local time.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import orjson

from filelog_sink.models import Level, LogEvent

logger = logging.getLogger(__name__)

# Maximum characters of a rejected line quoted in the warning.
MAX_QUOTED_CHARS = 200


def classify(raw: str | bytes, lineno: Optional[int] = None) -> Optional[LogEvent]:
    """Parse one NDJSON line.

    Parameters
    ----------
    raw:
        The raw line (str or bytes), with or without trailing newline.
    lineno:
        Line number used in warnings.

    Returns
    -------
    LogEvent
        When the line is a well-formed event.
    None
        When the line is blank or malformed.
    """
    if not raw.strip():
        return None

    try:
        msg = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        return _reject(raw, lineno, f"invalid JSON: {exc}")

    if not isinstance(msg, dict):
        return _reject(raw, lineno, "not a JSON object")

    try:
        level = Level.parse(msg.get("level", "info"))
    except ValueError as exc:
        return _reject(raw, lineno, str(exc))

    message = msg.get("message", "")
    if not isinstance(message, str):
        return _reject(raw, lineno, "message must be a string")

    metadata = msg.get("metadata") or {}
    if not isinstance(metadata, dict):
        return _reject(raw, lineno, "metadata must be an object")

    raw_ts = msg.get("timestamp")
    if raw_ts is None:
        timestamp = datetime.now()
    else:
        try:
            timestamp = datetime.fromisoformat(str(raw_ts).replace("Z", "+00:00"))
        except ValueError:
            return _reject(raw, lineno, f"unparsable timestamp {raw_ts!r}")

    return LogEvent(level=level, message=message, timestamp=timestamp, metadata=metadata)


# ── helpers ─────────────────────────────────────────────────────────


def _reject(raw: str | bytes, lineno: Optional[int], reason: str) -> None:
    """Log a malformed line (truncated) and return ``None``."""
    raw_str = raw if isinstance(raw, str) else raw.decode("utf-8", errors="replace")
    raw_str = raw_str.rstrip("\r\n")
    if len(raw_str) > MAX_QUOTED_CHARS:
        raw_str = raw_str[:MAX_QUOTED_CHARS] + "..."
    where = f"line {lineno}" if lineno is not None else "event"
    logger.warning("Skipping malformed %s (%s): %s", where, reason, raw_str)
    return None
