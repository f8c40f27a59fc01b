"""Click CLI for filelog-sink.

Entry point registered in ``pyproject.toml`` as ``filelog-sink``.

Subcommands::

    filelog-sink -c config.json -n app < events.ndjson   # feed events to a sink
    filelog-sink --path 'log/$date.log' -i events.ndjson # ad-hoc sink, no config file
    filelog-sink --validate-config -c config.json        # validate config and exit
    filelog-sink render '$date [$level] $message'        # render a template once

While running, ``SIGHUP`` reloads the config file and reconfigures the sink
before the next event; ``SIGTERM`` / ``SIGINT`` stop the pipeline.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
from collections import Counter
from datetime import datetime
from typing import IO, Any, Optional

import click
import orjson

from filelog_sink import __version__
from filelog_sink.classifier import classify
from filelog_sink.config import AppConfig, SinkConfigStore, load_config
from filelog_sink.errors import UnknownFieldError
from filelog_sink.models import Level, LogEvent, WriteResult
from filelog_sink.sink import FileSink
from filelog_sink.template import FORMAT, PATH, compile_template, render
from filelog_sink.transform import format_context, path_context

logger = logging.getLogger("filelog_sink")

DEFAULT_SINK = "file"

LEVEL_CHOICES = ["debug", "info", "warn", "error"]


# ── structured JSON log formatter ───────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON to stderr."""

    def format(self, record: logging.LogRecord) -> str:
        obj = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            obj["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(obj).decode()


def _setup_logging(level: str) -> None:
    """Configure the root logger with JSON output on stderr."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        if isinstance(handler.formatter, _JsonFormatter):
            root.removeHandler(handler)  # repeated in-process invocations

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_JsonFormatter())
    root.addHandler(stderr_handler)


def _load(cfg_path: Optional[str]) -> AppConfig:
    if not cfg_path:
        return AppConfig()
    return load_config(cfg_path)


def _unescape(text: str) -> str:
    """Expand the ``\\n`` and ``\\t`` escapes shells make awkward to type."""
    return text.replace("\\n", "\n").replace("\\t", "\t")


def _overrides(
    path: Optional[str],
    fmt: Optional[str],
    level: Optional[str],
    tag: Optional[str],
    metadata: tuple[str, ...],
) -> dict[str, Any]:
    """CLI flags that were actually given, as sink options."""
    opts: dict[str, Any] = {}
    if path is not None:
        opts["path"] = path
    if fmt is not None:
        opts["format"] = _unescape(fmt)
    if level is not None:
        opts["level"] = level
    if tag is not None:
        opts["tag"] = tag
    if metadata:
        opts["metadata"] = list(metadata)
    return opts


# ── main CLI group ──────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.option("-c", "--config", "config_path", default=None,
              help="Config file path (default: $FILELOG_SINK_CONFIG).")
@click.option("-n", "--name", "sink_name", default=DEFAULT_SINK, show_default=True,
              help="Sink name in the config file.")
@click.option("-i", "--input", "input_file", type=click.File("rb"), default="-",
              help="NDJSON event file (default: stdin).")
@click.option("--path", default=None, help="Override the path template.")
@click.option("--format", "fmt", default=None,
              help="Override the line template (backslash escapes allowed).")
@click.option("--level", default=None, type=click.Choice(LEVEL_CHOICES),
              help="Override the minimum event level.")
@click.option("--tag", default=None, help="Override the tag filter.")
@click.option("-m", "--metadata", multiple=True, help="Whitelisted metadata key (repeatable).")
@click.option("--log-level", default=None, type=click.Choice(LEVEL_CHOICES),
              help="Diagnostic log verbosity.")
@click.option("--validate-config", "validate_only", is_flag=True,
              help="Validate config and exit.")
@click.version_option(__version__)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Optional[str],
    sink_name: str,
    input_file: IO[bytes],
    path: Optional[str],
    fmt: Optional[str],
    level: Optional[str],
    tag: Optional[str],
    metadata: tuple[str, ...],
    log_level: Optional[str],
    validate_only: bool,
) -> None:
    """filelog-sink: render NDJSON log events into templated, rotation-aware files."""
    if ctx.invoked_subcommand is not None:
        return  # defer to subcommand

    cfg_path = config_path or os.environ.get("FILELOG_SINK_CONFIG")

    # --- load + validate config ---
    try:
        cfg = _load(cfg_path)
        store = SinkConfigStore(cfg.sinks)
        sink = FileSink(sink_name, store, **_overrides(path, fmt, level, tag, metadata))
    except Exception as exc:
        click.echo(f"Config error: {exc}", err=True)
        raise SystemExit(1) from exc

    effective_level = (
        log_level
        or os.environ.get("FILELOG_SINK_LOG_LEVEL")
        or cfg.logging.level
    )
    _setup_logging(effective_level)

    if validate_only:
        sink.close()
        click.echo("Configuration is valid.", err=True)
        raise SystemExit(0)

    if not sink.config.enabled:
        logger.warning("Sink %s has no path configured; all events will be dropped", sink_name)

    logger.info("Starting filelog-sink %s (sink=%s)", __version__, sink_name)
    counts = _run_pipeline(sink, input_file, cfg_path)

    summary = ", ".join(f"{result.value}={counts[result]}" for result in WriteResult)
    click.echo(f"Processed {sum(counts.values())} events: {summary}", err=True)


# ── pipeline ────────────────────────────────────────────────────────


class _Signals:
    """Flags set from signal handlers and consumed between events."""

    def __init__(self) -> None:
        self.reload = False
        self.stop = False
        self.waiting = False
        self._previous: dict[int, Any] = {}

    def install(self) -> None:
        for sig, handler in (
            (getattr(signal, "SIGHUP", None), self._on_hup),
            (signal.SIGTERM, self._on_stop),
        ):
            if sig is None:
                continue  # Windows has no SIGHUP
            try:
                self._previous[sig] = signal.signal(sig, handler)
            except ValueError:
                pass  # not the main thread

    def restore(self) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()

    def _on_hup(self, signum: int, frame: Any) -> None:
        self.reload = True

    def _on_stop(self, signum: int, frame: Any) -> None:
        self.stop = True
        if self.waiting:
            # Blocked on input: nothing is half-written, leave right away.
            raise KeyboardInterrupt


def _reload(sink: FileSink, cfg_path: Optional[str]) -> None:
    """Reload the config file and reconfigure *sink* with its section."""
    if not cfg_path:
        logger.info("SIGHUP received but no config file in use")
        return
    try:
        cfg = load_config(cfg_path)
        sink.configure(**cfg.sinks.get(sink.name, {}))
    except Exception:
        logger.exception("Reload failed; keeping previous configuration")
        return
    logger.info("Reloaded configuration from %s", cfg_path)


def _run_pipeline(sink: FileSink, input_file: IO[bytes], cfg_path: Optional[str]) -> Counter:
    """Read → classify → deliver each event, in order."""
    signals = _Signals()
    signals.install()
    counts: Counter = Counter()
    lineno = 0
    try:
        signals.waiting = True
        for raw_line in input_file:
            signals.waiting = False
            lineno += 1

            if signals.reload:
                signals.reload = False
                _reload(sink, cfg_path)

            event = classify(raw_line, lineno=lineno)
            if event is not None:
                counts[sink.handle_event(event)] += 1

            if signals.stop:
                logger.info("Received shutdown signal")
                break
            signals.waiting = True
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        signals.waiting = False
        signals.restore()
        sink.close()
        logger.info("Pipeline shut down (processed %d lines)", lineno)
    return counts


# ── render subcommand ───────────────────────────────────────────────


@main.command("render")
@click.argument("template")
@click.option("--kind", type=click.Choice([FORMAT, PATH]), default=FORMAT, show_default=True,
              help="Template kind.")
@click.option("--level", default="info", type=click.Choice(LEVEL_CHOICES), show_default=True)
@click.option("--message", default="", help="Sample message.")
@click.option("--timestamp", default=None, help="ISO 8601 timestamp (default: now).")
@click.option("--meta", multiple=True, help="Sample metadata as key=value (repeatable).")
def render_cmd(
    template: str,
    kind: str,
    level: str,
    message: str,
    timestamp: Optional[str],
    meta: tuple[str, ...],
) -> None:
    """Compile TEMPLATE and render it against a sample event."""
    try:
        compiled = compile_template(_unescape(template), kind)
        ts = datetime.fromisoformat(timestamp) if timestamp else datetime.now()
    except (UnknownFieldError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(2) from exc

    metadata: dict[str, Any] = {}
    for item in meta:
        key, _, value = item.partition("=")
        metadata[key] = value

    event = LogEvent(level=Level.parse(level), message=message, timestamp=ts, metadata=metadata)
    if kind == PATH:
        context = path_context(event)
    else:
        context = format_context(event, metadata)
    click.echo(render(compiled, context), nl=kind == PATH)
