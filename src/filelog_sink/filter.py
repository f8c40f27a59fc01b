"""Per-event acceptance by severity, tag and sink state.

Filter chain (evaluated in order)::

    1. no path template configured          → drop (sink disabled)
    2. ``min_level`` set AND level below it → drop
    3. ``tag_filter`` set AND metadata ``tag`` differs or is missing → drop
    4. Otherwise → pass, metadata reduced to the ``metadata_keys`` whitelist
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from filelog_sink.config import SinkConfig
from filelog_sink.models import LogEvent

logger = logging.getLogger(__name__)


class EventFilter:
    """Stateless filter bound to one :class:`SinkConfig`."""

    def __init__(self, config: SinkConfig) -> None:
        self._enabled = config.enabled
        self._min_level = config.min_level
        self._tag_filter = config.tag_filter
        self._metadata_keys = config.metadata_keys

    def __call__(self, event: LogEvent) -> Optional[dict[str, Any]]:
        return self.apply(event)

    def accepts(self, event: LogEvent) -> bool:
        """Return True when *event* passes the filter chain."""
        if not self._enabled:
            return False

        if self._min_level is not None and event.level < self._min_level:
            logger.debug(
                "Filtered %s event: below %s", event.level.label, self._min_level.label
            )
            return False

        if self._tag_filter is not None:
            tag = event.metadata.get("tag")
            if tag != self._tag_filter:
                logger.debug("Filtered event: tag %r != %r", tag, self._tag_filter)
                return False

        return True

    def apply(self, event: LogEvent) -> Optional[dict[str, Any]]:
        """Evaluate the filter chain.

        Returns
        -------
        dict or None
            The event metadata reduced to the whitelist (in whitelist order,
            missing keys omitted) when accepted, ``None`` when filtered.
        """
        if not self.accepts(event):
            return None
        return select_metadata(event.metadata, self._metadata_keys)


def select_metadata(metadata: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    """Keep only *keys* of *metadata*, in the order of *keys*."""
    return {key: metadata[key] for key in keys if key in metadata}
