"""Tests for the configuration store and config file loading."""

from pathlib import Path

import jsonschema
import orjson
import pytest

from filelog_sink.config import (
    DEFAULT_FORMAT,
    OpenOptions,
    SinkConfigStore,
    build_sink_config,
    load_config,
)
from filelog_sink.errors import UnknownFieldError
from filelog_sink.models import Level

SCHEMA = Path(__file__).resolve().parent.parent / "config" / "config.schema.json"


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "config.json"
    path.write_bytes(orjson.dumps(data))
    return path


class TestBuildSinkConfig:
    """Compiling raw options."""

    def test_defaults(self) -> None:
        cfg = build_sink_config("app", {})
        assert cfg.format_template.source == DEFAULT_FORMAT
        assert cfg.path_template is None
        assert not cfg.enabled
        assert cfg.min_level is None
        assert cfg.metadata_keys == ()
        assert cfg.tag_filter is None
        assert cfg.open_options == OpenOptions()

    def test_all_options(self) -> None:
        cfg = build_sink_config("app", {
            "level": "warning",
            "path": "log/$date.log",
            "format": "$message\n",
            "metadata": ["b", "a", "b"],
            "tag": "audit",
            "opts": {"encoding": "latin-1", "flush": False},
        })
        assert cfg.enabled
        assert cfg.path_template.kind == "path"
        assert cfg.min_level is Level.WARN
        assert cfg.metadata_keys == ("b", "a")
        assert cfg.tag_filter == "audit"
        assert cfg.open_options.encoding == "latin-1"
        assert cfg.open_options.flush is False

    def test_bad_level(self) -> None:
        with pytest.raises(ValueError):
            build_sink_config("app", {"level": "loud"})

    def test_open_options_ignore_unknown(self) -> None:
        opts = OpenOptions.from_dict({"buffering": 1, "delayed_write": 1024})
        assert opts == OpenOptions(buffering=1)

    @pytest.mark.parametrize(
        "raw",
        [{"buffering": "8192"}, {"buffering": True}, {"encoding": 8}, {"flush": "no"}, ["utf-8"]],
    )
    def test_open_options_wrong_type(self, raw) -> None:
        with pytest.raises(ValueError):
            OpenOptions.from_dict(raw)

    def test_open_options_newline_may_be_none(self) -> None:
        assert OpenOptions.from_dict({"newline": None, "buffering": 0}).buffering == 0

    def test_metadata_single_key(self) -> None:
        """A bare string names one key rather than one key per character."""
        cfg = build_sink_config("app", {"metadata": "request_id"})
        assert cfg.metadata_keys == ("request_id",)

    def test_metadata_not_a_list(self) -> None:
        with pytest.raises(ValueError):
            build_sink_config("app", {"metadata": 5})

    def test_tag_keeps_its_type(self) -> None:
        assert build_sink_config("app", {"tag": 5}).tag_filter == 5


class TestSinkConfigStore:
    """Merge-and-persist semantics."""

    def test_overrides_win(self) -> None:
        store = SinkConfigStore({"app": {"path": "a.log", "level": "info"}})
        cfg = store.configure("app", {"level": "error"})
        assert cfg.min_level is Level.ERROR
        assert cfg.path_template.source == "a.log"
        assert store.get("app") == {"path": "a.log", "level": "error"}

    def test_failed_configure_is_not_persisted(self) -> None:
        store = SinkConfigStore({"app": {"format": "$message\n"}})
        with pytest.raises(UnknownFieldError):
            store.configure("app", {"format": "$oops"})
        assert store.get("app") == {"format": "$message\n"}

    def test_bad_open_options_are_not_persisted(self) -> None:
        store = SinkConfigStore({"app": {"opts": {"buffering": 1}}})
        with pytest.raises(ValueError):
            store.configure("app", {"opts": {"buffering": "1"}})
        assert store.get("app") == {"opts": {"buffering": 1}}

    def test_unknown_name_starts_empty(self) -> None:
        store = SinkConfigStore()
        assert store.get("missing") == {}
        cfg = store.configure("missing")
        assert not cfg.enabled
        assert store.names() == ["missing"]

    def test_get_returns_copy(self) -> None:
        store = SinkConfigStore({"app": {"path": "a.log"}})
        store.get("app")["path"] = "changed"
        assert store.get("app")["path"] == "a.log"

    def test_initial_mapping_is_copied(self) -> None:
        initial = {"app": {"path": "a.log"}}
        store = SinkConfigStore(initial)
        store.configure("app", {"path": "b.log"})
        assert initial["app"]["path"] == "a.log"


class TestLoadConfig:
    """Config file loading, interpolation and validation."""

    def test_load(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {
            "logging": {"level": "debug"},
            "sinks": {"app": {"path": "log/$date.log", "metadata": ["a"]}},
        })
        cfg = load_config(path, schema_path=SCHEMA)
        assert cfg.logging.level == "debug"
        assert cfg.sinks["app"]["path"] == "log/$date.log"

    def test_env_interpolation_keeps_placeholders(self, tmp_path: Path, monkeypatch) -> None:
        """``${VAR}`` is interpolated; ``$date`` is left for the template."""
        monkeypatch.setenv("LOG_DIR", "/var/log/app")
        path = _write(tmp_path, {"sinks": {"app": {"path": "${LOG_DIR}/$date.log"}}})
        cfg = load_config(path, schema_path=SCHEMA)
        assert cfg.sinks["app"]["path"] == "/var/log/app/$date.log"

    def test_default_value(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.delenv("LOG_DIR", raising=False)
        path = _write(tmp_path, {"sinks": {"app": {"path": "${LOG_DIR:-log}/app.log"}}})
        cfg = load_config(path, schema_path=SCHEMA)
        assert cfg.sinks["app"]["path"] == "log/app.log"

    def test_cli_override_beats_env(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("LOG_DIR", "env")
        path = _write(tmp_path, {"sinks": {"app": {"path": "${LOG_DIR}/app.log"}}})
        cfg = load_config(path, overrides={"LOG_DIR": "cli"}, schema_path=SCHEMA)
        assert cfg.sinks["app"]["path"] == "cli/app.log"

    def test_missing_variable(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.delenv("NO_SUCH_VAR_FOR_TEST", raising=False)
        path = _write(tmp_path, {"sinks": {"app": {"path": "${NO_SUCH_VAR_FOR_TEST}/a.log"}}})
        with pytest.raises(ValueError):
            load_config(path, schema_path=SCHEMA)

    def test_schema_rejects_unknown_option(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"sinks": {"app": {"path": "a.log", "colour": "red"}}})
        with pytest.raises(jsonschema.ValidationError):
            load_config(path, schema_path=SCHEMA)

    def test_schema_rejects_bad_level(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"sinks": {"app": {"level": "loud"}}})
        with pytest.raises(jsonschema.ValidationError):
            load_config(path, schema_path=SCHEMA)

    def test_missing_schema_skips_validation(self, tmp_path: Path) -> None:
        path = _write(tmp_path, {"sinks": {"app": {"colour": "red"}}})
        cfg = load_config(path, schema_path=tmp_path / "absent.json")
        assert cfg.sinks["app"] == {"colour": "red"}

    def test_example_config_is_valid(self, monkeypatch) -> None:
        monkeypatch.delenv("LOG_DIR", raising=False)
        cfg = load_config(SCHEMA.parent / "config.example.json", schema_path=SCHEMA)
        store = SinkConfigStore(cfg.sinks)
        for name in store.names():
            assert store.configure(name).enabled
