"""Build per-event field contexts for the path and format templates.

The two contexts differ:

* the **format** context carries the whitelist-filtered metadata as the
  ``metadata`` mapping only, since format templates cannot name other fields;
* the **path** context merges the event's *raw* metadata over the time
  fields, so path templates can use keys that were never whitelisted (for
  example ``log/$tenant/$date.log``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from filelog_sink.models import LogEvent


def time_fields(ts: datetime) -> dict[str, str]:
    """Zero-padded date/time fields for *ts*."""
    year = f"{ts.year:02d}"
    month = f"{ts.month:02d}"
    day = f"{ts.day:02d}"
    hour = f"{ts.hour:02d}"
    minute = f"{ts.minute:02d}"
    sec = f"{ts.second:02d}"
    return {
        "date": f"{ts.year:04d}-{month}-{day}",
        "year": year,
        "month": month,
        "day": day,
        "time": f"{hour}:{minute}:{sec}.{ts.microsecond // 1000:03d}",
        "hour": hour,
        "min": minute,
        "sec": sec,
    }


def format_context(event: LogEvent, metadata: Mapping[str, Any]) -> dict[str, Any]:
    """Context for the format template.

    Parameters
    ----------
    event:
        The accepted event.
    metadata:
        Metadata already reduced to the whitelist, in whitelist order.
    """
    context: dict[str, Any] = time_fields(event.timestamp)
    context["level"] = event.level.label
    context["message"] = event.message
    context["metadata"] = dict(metadata)
    return context


def path_context(event: LogEvent) -> dict[str, Any]:
    """Context for the path template: time fields and level, raw metadata on top."""
    context: dict[str, Any] = time_fields(event.timestamp)
    context["level"] = event.level.label
    context.update(event.metadata)
    return context
