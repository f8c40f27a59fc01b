"""The file sink: filter → render path → rotation-aware write → render line.

A :class:`FileSink` is driven by a single logical writer: the dispatcher
hands it one event at a time and each event is processed to completion
before :meth:`FileSink.handle_event` returns.  Reconfiguration and path
introspection share the same per-instance lock, so a host that calls in
from several threads still sees events and configuration changes in a
serial order.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from filelog_sink.config import SinkConfig, SinkConfigStore
from filelog_sink.errors import WriterError
from filelog_sink.filter import EventFilter
from filelog_sink.models import LogEvent, WriteResult
from filelog_sink.output import RotatingFileWriter
from filelog_sink.template import render
from filelog_sink.transform import format_context, path_context

logger = logging.getLogger(__name__)


class FileSink:
    """Render log events into a templated, rotation-aware file.

    Parameters
    ----------
    name:
        Sink name; its options are looked up in (and saved to) *store*.
    store:
        Configuration store shared by the process.
    **overrides:
        Options merged over the stored ones, exactly as :meth:`configure`.

    Raises
    ------
    UnknownFieldError
        If the initial format template is invalid.
    ValueError
        If the level, metadata or open options are malformed.
    """

    def __init__(self, name: str, store: SinkConfigStore, **overrides: Any) -> None:
        self.name = name
        self._store = store
        self._lock = threading.Lock()
        self._config = store.configure(name, overrides)
        self._filter = EventFilter(self._config)
        self._writer = RotatingFileWriter(self._config.open_options)
        self._last_path: Optional[str] = None

    @property
    def config(self) -> SinkConfig:
        return self._config

    def handle_event(self, event: LogEvent) -> WriteResult:
        """Deliver one event; never raises for filesystem failures."""
        with self._lock:
            return self._handle(event)

    def configure(self, **overrides: Any) -> SinkConfig:
        """Merge *overrides* into the stored options and apply the result.

        The open file is kept across a reconfigure unless the open options
        change or the path template is removed; a changed path template
        simply resolves to a new path on the next event.  On error the
        previous configuration stays in effect.
        """
        with self._lock:
            config = self._store.configure(self.name, overrides)
            if config.open_options != self._config.open_options or not config.enabled:
                self._writer.close()
                self._writer = RotatingFileWriter(config.open_options)
            if not config.enabled:
                self._last_path = None
            self._config = config
            self._filter = EventFilter(config)
            logger.info("Reconfigured sink %s", self.name)
            return config

    def path(self) -> Optional[str]:
        """Last resolved file path, or ``None`` if disabled or nothing logged yet."""
        with self._lock:
            return self._last_path if self._config.enabled else None

    def close(self) -> None:
        with self._lock:
            self._writer.close()

    # ── internal ────────────────────────────────────────────────────

    def _handle(self, event: LogEvent) -> WriteResult:
        config = self._config
        if not config.enabled:
            return WriteResult.DISABLED

        metadata = self._filter.apply(event)
        if metadata is None:
            return WriteResult.FILTERED

        path = render(config.path_template, path_context(event))
        if not path:
            logger.warning("Sink %s: path template rendered empty, dropping event", self.name)
            return WriteResult.DROPPED
        self._last_path = path

        line = render(config.format_template, format_context(event, metadata))
        try:
            self._writer.write(path, line)
        except WriterError as exc:
            logger.warning("Sink %s dropped %s event: %s", self.name, event.level.label, exc)
            return WriteResult.DROPPED
        return WriteResult.WRITTEN
