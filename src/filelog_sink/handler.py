"""Stdlib :mod:`logging` integration.

Attach a :class:`TemplatedFileHandler` to any logger and every record it
handles becomes a :class:`~filelog_sink.models.LogEvent` delivered to a
:class:`~filelog_sink.sink.FileSink`::

    store = SinkConfigStore()
    handler = TemplatedFileHandler("app", store, path="log/$date.log",
                                   metadata=["request_id"])
    logging.getLogger().addHandler(handler)
    logging.getLogger("api").info("served", extra={"request_id": "r-1"})

Metadata is the ``logger`` name plus every attribute passed via ``extra=``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from filelog_sink.config import SinkConfigStore
from filelog_sink.models import Level, LogEvent, WriteResult
from filelog_sink.sink import FileSink

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_OWN_LOGGER_PREFIX = __name__.split(".")[0]


def level_for(levelno: int) -> Level:
    """Map a stdlib level number onto :class:`Level`."""
    if levelno < logging.INFO:
        return Level.DEBUG
    if levelno < logging.WARNING:
        return Level.INFO
    if levelno < logging.ERROR:
        return Level.WARN
    return Level.ERROR


class TemplatedFileHandler(logging.Handler):
    """A :class:`logging.Handler` backed by a :class:`FileSink`.

    Keyword options configure the sink, so ``level="warn"`` is the sink
    threshold, checked on the mapped four-level scale after the handler's own
    :meth:`setLevel` threshold.
    """

    _exc_formatter = logging.Formatter()

    def __init__(
        self,
        name: str,
        store: Optional[SinkConfigStore] = None,
        **overrides: Any,
    ) -> None:
        super().__init__()
        self.sink = FileSink(name, store or SinkConfigStore(), **overrides)
        self.last_result: Optional[WriteResult] = None

    def emit(self, record: logging.LogRecord) -> None:
        # The sink reports its own drops through logging; never feed those back.
        if record.name == _OWN_LOGGER_PREFIX or record.name.startswith(_OWN_LOGGER_PREFIX + "."):
            return
        try:
            self.last_result = self.sink.handle_event(self.to_event(record))
        except Exception:
            self.handleError(record)

    def to_event(self, record: logging.LogRecord) -> LogEvent:
        message = record.getMessage()
        if record.exc_info and record.exc_info[0] is not None:
            message = f"{message}\n{self._exc_formatter.formatException(record.exc_info)}"
        metadata: dict[str, Any] = {"logger": record.name}
        metadata.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS
        )
        return LogEvent(
            level=level_for(record.levelno),
            message=message,
            timestamp=datetime.fromtimestamp(record.created),
            metadata=metadata,
        )

    def close(self) -> None:
        try:
            self.sink.close()
        finally:
            super().close()