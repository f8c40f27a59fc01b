"""Tests for the stdlib logging handler."""

import logging
from pathlib import Path

import pytest

from filelog_sink.config import SinkConfigStore
from filelog_sink.handler import TemplatedFileHandler, level_for
from filelog_sink.models import Level, WriteResult


@pytest.fixture
def app_logger():
    log = logging.getLogger("tests.handler.app")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    handlers = []
    yield log, handlers
    for handler in handlers:
        log.removeHandler(handler)
        handler.close()


def _attach(app_logger, **options) -> TemplatedFileHandler:
    log, handlers = app_logger
    handler = TemplatedFileHandler("app", SinkConfigStore(), **options)
    log.addHandler(handler)
    handlers.append(handler)
    return handler


@pytest.mark.parametrize(
    "levelno, expected",
    [
        (5, Level.DEBUG),
        (logging.DEBUG, Level.DEBUG),
        (logging.INFO, Level.INFO),
        (logging.WARNING, Level.WARN),
        (logging.ERROR, Level.ERROR),
        (logging.CRITICAL, Level.ERROR),
    ],
)
def test_level_mapping(levelno: int, expected: Level) -> None:
    assert level_for(levelno) is expected


def test_records_are_written(app_logger, tmp_path: Path) -> None:
    target = tmp_path / "app.log"
    _attach(app_logger, path=str(target), format="$level $message $metadata\n",
            metadata=["request_id"])
    log, _ = app_logger

    log.info("served %s", "ok", extra={"request_id": "r-1", "secret": "s"})
    log.warning("slow")

    assert target.read_text() == "info served ok request_id=r-1;\nwarn slow \n"


def test_logger_name_is_metadata(app_logger, tmp_path: Path) -> None:
    """The logger name is available to path templates."""
    _attach(app_logger, path=str(tmp_path / "$logger.log"), format="$message\n")
    log, _ = app_logger
    log.error("boom")
    assert (tmp_path / "tests.handler.app.log").read_text() == "boom\n"


def test_sink_level_option(app_logger, tmp_path: Path) -> None:
    target = tmp_path / "app.log"
    handler = _attach(app_logger, path=str(target), format="$message\n", level="warn")
    log, _ = app_logger

    log.info("quiet")
    assert handler.last_result is WriteResult.FILTERED
    log.warning("loud")
    assert handler.last_result is WriteResult.WRITTEN
    assert target.read_text() == "loud\n"


def test_exception_is_appended(app_logger, tmp_path: Path) -> None:
    target = tmp_path / "app.log"
    _attach(app_logger, path=str(target), format="$message\n")
    log, _ = app_logger
    try:
        1 / 0
    except ZeroDivisionError:
        log.exception("failed")
    text = target.read_text()
    assert text.startswith("failed\nTraceback")
    assert "ZeroDivisionError" in text


def test_sink_failure_goes_to_handle_error(app_logger, tmp_path: Path, monkeypatch) -> None:
    """An unexpected sink error is reported through ``handleError``, not raised."""
    handler = _attach(app_logger, path=str(tmp_path / "app.log"))
    log, _ = app_logger
    failed = []

    def _boom(event):
        raise TypeError("bad value")

    monkeypatch.setattr(handler.sink, "handle_event", _boom)
    monkeypatch.setattr(handler, "handleError", failed.append)

    log.warning("hello")

    assert [record.getMessage() for record in failed] == ["hello"]


def test_own_records_are_ignored(app_logger, tmp_path: Path) -> None:
    """Records from the sink's own loggers never reach the sink."""
    target = tmp_path / "app.log"
    handler = _attach(app_logger, path=str(target))
    record = logging.LogRecord("filelog_sink.sink", logging.WARNING, __file__, 1, "drop", (), None)

    handler.handle(record)

    assert handler.last_result is None
    assert not target.exists()
