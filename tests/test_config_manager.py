"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from chartdex.config import (
    ChartdexConfig,
    ConfigError,
    ConfigManager,
    flatten_for_env,
    parse_assignments,
    resolve_with_precedence,
    validate_library,
)
from chartdex.config.resolver import parse_env_overrides
from chartdex.index.timeframes import Timeframe


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, **kwargs) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager(**kwargs)


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch, env={})

    path = manager.ensure_exists()

    assert path == tmp_path / ".chartdex" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "Chartdex configuration file" in text
    assert "Last updated:" in text

    config = manager.load()
    assert isinstance(config, ChartdexConfig)
    assert config.library.timeframes == list(Timeframe)


def test_load_applies_file_then_environment_then_command_line(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = {
        "CHARTDEX__LIBRARY__ASSETS": "[BTC, ETH]",
        "CHARTDEX__LOGGING__LEVEL": "INFO",
        "UNRELATED": "ignored",
    }
    manager = _fresh_manager(tmp_path, monkeypatch, env=env)
    manager.save({"library": {"base_path": "/data/backtests", "assets": ["BTC"]}})

    config = manager.load(cli_overrides=parse_assignments(["logging.level=DEBUG"]))

    assert config.library.base_path == "/data/backtests"
    assert config.library.assets == ["BTC", "ETH"]
    assert config.logging.level == "DEBUG"
    assert manager.load(include_env=False).library.assets == ["BTC"]


def test_non_mapping_file_raises_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch, env={})
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()

    manager.config_path.write_text("library: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_parse_env_overrides_reads_yaml_literals() -> None:
    overrides = parse_env_overrides(
        {
            "CHARTDEX__LIBRARY__ASSETS": "[BTC, ETH]",
            "CHARTDEX__WATCH__DEBOUNCE_SECONDS": "2.5",
            "CHARTDEX__": "ignored",
            "HOME": "/root",
        }
    )

    assert overrides == {"library": {"assets": ["BTC", "ETH"]}, "watch": {"debounce_seconds": 2.5}}


def test_parse_assignments_builds_nested_overrides() -> None:
    overrides = parse_assignments(
        ["library.base_path=~/charts", "library.timeframes=[1m, 4h]", "notes.path="]
    )

    assert overrides == {
        "library": {"base_path": "~/charts", "timeframes": ["1m", "4h"]},
        "notes": {"path": None},
    }


@pytest.mark.parametrize("assignment", ["library.base_path", "=x", "library..assets=[]"])
def test_parse_assignments_rejects_malformed_input(assignment: str) -> None:
    with pytest.raises(ConfigError):
        parse_assignments([assignment])


def test_flatten_for_env_renders_every_setting() -> None:
    flat = flatten_for_env(ChartdexConfig())

    assert flat["CHARTDEX__LOGGING__LEVEL"] == "WARNING"
    assert flat["CHARTDEX__LIBRARY__BASE_PATH"] == "null"
    assert flat["CHARTDEX__WATCH__DEBOUNCE_SECONDS"] == "1.0"
    assert flat["CHARTDEX__LIBRARY__TIMEFRAMES"] == "[1m, 3m, 5m, 15m, 1h, 4h]"
    # the rendered values read back to the same configuration
    assert resolve_with_precedence(
        defaults=ChartdexConfig(), env_overrides=parse_env_overrides(flat)
    ) == ChartdexConfig()


def test_timeframe_tokens_are_normalized() -> None:
    config = resolve_with_precedence(
        defaults=ChartdexConfig(),
        file_overrides={"library": {"timeframes": ["1min", "4H"]}},
    )

    assert config.library.timeframes == [Timeframe.M1, Timeframe.H4]


@pytest.mark.parametrize(
    "overrides",
    [
        {"library": {"timeframes": ["2min"]}},
        {"library": {"assets": ["BTC", "BTC"]}},
        {"library": {"assets": ["../etc"]}},
        {"watch": {"debounce_seconds": "soon"}},
        {"library": {"unknown": True}},
    ],
)
def test_resolve_with_precedence_invalid_value_raises(overrides: dict) -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(defaults=ChartdexConfig(), file_overrides=overrides)


def test_invalid_value_message_names_key_and_layer() -> None:
    with pytest.raises(ConfigError) as excinfo:
        resolve_with_precedence(
            defaults=ChartdexConfig(),
            file_overrides={"library": {"timeframes": ["1m"]}},
            env_overrides={"library": {"timeframes": ["2min"]}},
        )

    assert "library.timeframes (environment)" in str(excinfo.value)


def test_set_value_persists_validated_value(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch, env={})
    manager.ensure_exists()

    update = manager.set_value("library.timeframes", "[1min, 4h]")

    assert update.changed
    assert update.before == ["1m", "3m", "5m", "15m", "1h", "4h"]
    assert update.after == ["1m", "4h"]
    assert manager.load().library.timeframes == [Timeframe.M1, Timeframe.H4]

    saved_text = manager.config_path.read_text(encoding="utf-8")
    repeat = manager.set_value("library.timeframes", "[1m, 4h]")
    assert not repeat.changed
    assert manager.config_path.read_text(encoding="utf-8") == saved_text


def test_set_value_rejects_invalid_values_without_writing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch, env={})
    manager.ensure_exists()
    before = manager.config_path.read_text(encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.set_value("library.timeframes", "[2min]")
    with pytest.raises(ConfigError):
        manager.set_value("logging.level.name", "DEBUG")

    assert manager.config_path.read_text(encoding="utf-8") == before


@pytest.mark.parametrize(
    "library",
    [
        {"assets": ["BTC"]},
        {"base_path": "  ", "assets": ["BTC"]},
        {"base_path": "/data", "assets": []},
        {"base_path": "/data", "assets": ["BTC"], "timeframes": []},
    ],
)
def test_validate_library_rejects_incomplete_settings(library: dict) -> None:
    config = ChartdexConfig.model_validate({"library": library})

    with pytest.raises(ConfigError):
        validate_library(config)


def test_validate_library_returns_settings() -> None:
    config = ChartdexConfig.model_validate({"library": {"base_path": "/data", "assets": ["BTC"]}})

    assert validate_library(config).assets == ["BTC"]
