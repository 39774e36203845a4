"""Tests for livefeed.config."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from livefeed.config import (
    DEFAULTS,
    ConfigError,
    _deep_merge,
    _validate,
    default_config,
    entries_per_page,
    initial_entries,
    load_config,
    resolve_db_path,
)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a minimal .livefeed/config.yaml in tmp_path."""
    livefeed_dir = tmp_path / ".livefeed"
    livefeed_dir.mkdir()
    config = {
        "database": "data/feeds.db",
        "lazyload": {"entries_per_page": 5},
    }
    (livefeed_dir / "config.yaml").write_text(yaml.dump(config))
    return tmp_path


class TestDeepMerge:
    def test_flat_merge(self) -> None:
        base = {"a": 1, "b": 2}
        override = {"b": 3, "c": 4}
        assert _deep_merge(base, override) == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self) -> None:
        base = {"x": {"a": 1, "b": 2}}
        override = {"x": {"b": 3}}
        assert _deep_merge(base, override) == {"x": {"a": 1, "b": 3}}

    def test_does_not_mutate_base(self) -> None:
        base = {"a": {"b": 1}}
        _deep_merge(base, {"a": {"b": 2}})
        assert base["a"]["b"] == 1


class TestValidate:
    def test_defaults_are_valid(self) -> None:
        _validate(_deep_merge(DEFAULTS, {}))

    def test_lazyload_not_dict(self) -> None:
        config = _deep_merge(DEFAULTS, {"lazyload": "bad"})
        with pytest.raises(ConfigError, match="lazyload.*mapping"):
            _validate(config)

    def test_lazyload_missing_keys(self) -> None:
        config = _deep_merge(DEFAULTS, {})
        config["lazyload"] = {"entries_per_page": 10}
        with pytest.raises(ConfigError, match="lazyload.*missing"):
            _validate(config)

    def test_negative_key_event_limit(self) -> None:
        config = _deep_merge(DEFAULTS, {"key_events": {"limit": -1}})
        with pytest.raises(ConfigError, match="key_events.limit"):
            _validate(config)

    def test_empty_marker(self) -> None:
        config = _deep_merge(DEFAULTS, {"key_events": {"marker": ""}})
        with pytest.raises(ConfigError, match="marker"):
            _validate(config)

    def test_empty_database(self) -> None:
        config = _deep_merge(DEFAULTS, {"database": ""})
        with pytest.raises(ConfigError, match="database"):
            _validate(config)


class TestLoadConfig:
    def test_loads_and_merges(self, project_dir: Path) -> None:
        config = load_config(project_dir)
        assert config["database"] == "data/feeds.db"
        assert config["lazyload"]["entries_per_page"] == 5
        assert config["lazyload"]["max_entries_per_page"] == 100
        assert config["key_events"]["marker"] == "/key"

    def test_missing_config(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Config not found"):
            load_config(tmp_path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        (tmp_path / ".livefeed").mkdir()
        (tmp_path / ".livefeed" / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="YAML mapping"):
            load_config(tmp_path)

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        (tmp_path / ".livefeed").mkdir()
        (tmp_path / ".livefeed" / "config.yaml").write_text("")
        config = load_config(tmp_path)
        assert config["database"] == DEFAULTS["database"]

    def test_resolve_db_path(self, project_dir: Path) -> None:
        config = load_config(project_dir)
        assert resolve_db_path(config, project_dir) == project_dir / "data" / "feeds.db"


class TestPageSizes:
    def test_entries_per_page_default(self) -> None:
        assert entries_per_page(default_config()) == 20

    def test_entries_per_page_capped(self) -> None:
        config = _deep_merge(DEFAULTS, {"lazyload": {"entries_per_page": 1000}})
        assert entries_per_page(config) == 100

    def test_entries_per_page_non_positive_falls_back(self) -> None:
        config = _deep_merge(DEFAULTS, {"lazyload": {"entries_per_page": 0}})
        assert entries_per_page(config) == 20

    def test_initial_entries_negative_falls_back(self) -> None:
        config = _deep_merge(DEFAULTS, {"lazyload": {"initial_entries": -3}})
        assert initial_entries(config) == 20

    def test_initial_entries_zero_allowed(self) -> None:
        config = _deep_merge(DEFAULTS, {"lazyload": {"initial_entries": 0}})
        assert initial_entries(config) == 0
