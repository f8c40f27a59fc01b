"""Sink configuration: option merging, template compilation and file loading.

Per-sink options (all optional)::

    level     minimum severity; absent = accept all
    path      path template; absent = sink disabled
    format    line template (default ``DEFAULT_FORMAT``)
    metadata  ordered list of metadata keys forwarded to the line
    tag       only accept events whose ``tag`` metadata equals this
    opts      file-open options (see :class:`OpenOptions`)

Resolution order for ``${VAR}`` placeholders in the config file:
    CLI overrides → environment variables → raw config value.

``${VAR}`` (no default) raises if unresolvable.
``${VAR:-default}`` falls back to *default*.
Template placeholders (``$date``) are never touched by interpolation.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import jsonschema
import orjson

from filelog_sink.models import CompiledTemplate, Level
from filelog_sink.template import FORMAT, PATH, compile_optional, compile_template

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "$time [$level] $message $metadata\n"

OPTION_KEYS = ("level", "path", "format", "metadata", "tag", "opts")

_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*?))?\}")

_SCHEMA_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "config.schema.json"


@dataclass(frozen=True)
class OpenOptions:
    """Arguments for :func:`open`; append mode is always implied."""

    encoding: str = "utf-8"
    errors: str = "backslashreplace"
    buffering: int = -1
    newline: Optional[str] = None
    flush: bool = True

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "OpenOptions":
        """Build from a mapping, ignoring unknown keys.

        Raises
        ------
        ValueError
            If a known key has a value of the wrong type.
        """
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"opts must be a mapping, got {type(raw).__name__}")
        opts = {k: raw[k] for k in raw if k in cls.__dataclass_fields__}
        for key, value in opts.items():
            expected = _OPEN_OPTION_TYPES[key]
            # bool is an int subclass; only ``flush`` may be a bool
            if not isinstance(value, expected) or (key == "buffering" and isinstance(value, bool)):
                raise ValueError(f"opts.{key} has invalid value {value!r}")
        return cls(**opts)


_OPEN_OPTION_TYPES = {
    "encoding": str,
    "errors": str,
    "buffering": int,
    "newline": (str, type(None)),
    "flush": bool,
}


@dataclass
class SinkConfig:
    """Compiled, ready-to-use configuration of one sink."""

    name: str
    format_template: CompiledTemplate
    path_template: Optional[CompiledTemplate] = None
    min_level: Optional[Level] = None
    metadata_keys: tuple[str, ...] = ()
    tag_filter: Optional[Any] = None
    open_options: OpenOptions = field(default_factory=OpenOptions)

    @property
    def enabled(self) -> bool:
        return self.path_template is not None


@dataclass
class LoggingConfig:
    """Diagnostic logging of the ``filelog-sink`` process itself."""

    level: str = "info"


@dataclass
class AppConfig:
    """Top-level config file contents."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    sinks: dict[str, dict[str, Any]] = field(default_factory=dict)


def build_sink_config(name: str, options: Mapping[str, Any]) -> SinkConfig:
    """Compile raw *options* into a :class:`SinkConfig`.

    Raises
    ------
    UnknownFieldError
        If the format template references an unsupported field.
    ValueError
        If ``level`` does not name a level, ``metadata`` is not a list of
        keys, or ``opts`` holds a value of the wrong type.
    """
    level = options.get("level")
    tag = options.get("tag")
    return SinkConfig(
        name=name,
        format_template=compile_template(options.get("format") or DEFAULT_FORMAT, FORMAT),
        path_template=compile_optional(options.get("path"), PATH),
        min_level=Level.parse(level) if level is not None else None,
        metadata_keys=_metadata_keys(options.get("metadata")),
        tag_filter=tag,
        open_options=OpenOptions.from_dict(options.get("opts")),
    )


def _metadata_keys(raw: Any) -> tuple[str, ...]:
    """Whitelist as an ordered, de-duplicated tuple; a bare string is one key."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [raw]
    elif not isinstance(raw, (list, tuple)):
        raise ValueError(f"metadata must be a list of keys, got {type(raw).__name__}")
    return tuple(dict.fromkeys(str(k) for k in raw))


class SinkConfigStore:
    """Holds the raw options of every named sink.

    A store is created once per process (optionally seeded from the config
    file) and handed to each sink explicitly.  It never touches the
    filesystem.
    """

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._options: dict[str, dict[str, Any]] = {
            name: dict(opts) for name, opts in (initial or {}).items()
        }

    def get(self, name: str) -> dict[str, Any]:
        """Return a copy of the stored options for *name* (empty if unknown)."""
        return dict(self._options.get(name, {}))

    def put(self, name: str, options: Mapping[str, Any]) -> None:
        self._options[name] = dict(options)

    def names(self) -> list[str]:
        return list(self._options)

    def configure(self, name: str, overrides: Optional[Mapping[str, Any]] = None) -> SinkConfig:
        """Merge *overrides* over the stored options and compile the result.

        The merged options are persisted only once they compile, so a failed
        call leaves the stored configuration untouched.
        """
        merged = self.get(name)
        merged.update(overrides or {})
        unknown = sorted(set(merged) - set(OPTION_KEYS))
        if unknown:
            logger.warning("Ignoring unknown options for sink %s: %s", name, ", ".join(unknown))
        config = build_sink_config(name, merged)
        self.put(name, merged)
        logger.debug("Configured sink %s (path=%s)", name, merged.get("path"))
        return config


def _interpolate_value(value: str, overrides: dict[str, str] | None = None) -> str:
    """Replace ``${VAR}`` / ``${VAR:-default}`` in *value*."""

    def _replacer(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(2)  # None when no ``:-`` present

        if overrides and var_name in overrides:
            return overrides[var_name]
        env_val = os.environ.get(var_name)
        if env_val is not None:
            return env_val
        if default is not None:
            return default

        raise ValueError(
            f"Required variable ${{{var_name}}} is not set in environment or CLI overrides"
        )

    return _VAR_RE.sub(_replacer, value)


def _walk_and_interpolate(obj: Any, overrides: dict[str, str] | None = None) -> Any:
    """Recursively interpolate all string values in a JSON-like structure."""
    if isinstance(obj, str):
        return _interpolate_value(obj, overrides)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v, overrides) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(item, overrides) for item in obj]
    return obj


def _dict_to_config(raw: dict[str, Any]) -> AppConfig:
    """Convert a raw dict into a typed :class:`AppConfig`."""
    logging_raw = raw.get("logging", {})
    return AppConfig(
        logging=LoggingConfig(**{
            k: logging_raw[k] for k in logging_raw
            if k in LoggingConfig.__dataclass_fields__
        }),
        sinks={name: dict(opts) for name, opts in raw.get("sinks", {}).items()},
    )


def load_config(
    path: str | Path,
    overrides: dict[str, str] | None = None,
    schema_path: str | Path | None = None,
) -> AppConfig:
    """Load, interpolate, validate, and return the config file.

    Parameters
    ----------
    path:
        Filesystem path to the JSON config file.
    overrides:
        CLI-supplied variable overrides.
    schema_path:
        Path to the JSON Schema file.  Defaults to
        ``config/config.schema.json`` relative to the project root.

    Raises
    ------
    ValueError
        If a required ``${VAR}`` cannot be resolved.
    jsonschema.ValidationError
        If the config fails schema validation.
    """
    raw: dict[str, Any] = orjson.loads(Path(path).read_bytes())

    interpolated = _walk_and_interpolate(raw, overrides=overrides)

    sp = Path(schema_path) if schema_path else _SCHEMA_PATH
    if sp.exists():
        schema = orjson.loads(sp.read_bytes())
        jsonschema.validate(instance=interpolated, schema=schema)
        logger.debug("Config passed schema validation")
    else:
        logger.warning("Schema file not found at %s, skipping validation", sp)

    return _dict_to_config(interpolated)
