"""Tests for config/loader.py module.

Covers:
- _load_yaml() function
- _deep_merge() function
- load_config() source precedence
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from pkgdb.config import loader
from pkgdb.config.loader import _deep_merge, _load_yaml, config_files, load_config
from pkgdb.core.errors import ConfigError


@pytest.fixture
def global_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the global config at a per-test file (not created)."""
    path = tmp_path / "global" / "config.yaml"
    monkeypatch.setattr(loader, "GLOBAL_CONFIG_PATH", path)
    return path


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


class TestLoadYaml:
    """Tests for _load_yaml function."""

    def test_returns_empty_dict_for_missing_file(self, tmp_path: Path) -> None:
        """Returns empty dict when file doesn't exist."""
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        """Loads valid YAML content."""
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("logging:\n  level: DEBUG\n")

        assert _load_yaml(yaml_file) == {"logging": {"level": "DEBUG"}}

    def test_returns_empty_for_empty_file(self, tmp_path: Path) -> None:
        """Returns empty dict for empty file."""
        yaml_file = tmp_path / "empty.yaml"
        yaml_file.write_text("")

        assert _load_yaml(yaml_file) == {}

    def test_raises_config_error_for_invalid_yaml(self, tmp_path: Path) -> None:
        """Raises ConfigError for invalid YAML syntax."""
        yaml_file = tmp_path / "invalid.yaml"
        yaml_file.write_text("logging:\n  level:\n    - invalid: [unclosed")

        with pytest.raises(ConfigError):
            _load_yaml(yaml_file)


class TestDeepMerge:
    """Tests for _deep_merge function."""

    def test_override_wins(self) -> None:
        """Override values replace base values."""
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self) -> None:
        """Nested dicts are merged recursively."""
        base = {"scrape": {"max_worker_attempts": 3, "isolate_targets": False}}
        override = {"scrape": {"isolate_targets": True}}

        assert _deep_merge(base, override) == {
            "scrape": {"max_worker_attempts": 3, "isolate_targets": True}
        }

    def test_override_replaces_non_dict(self) -> None:
        """Non-dict override replaces dict base."""
        base: dict[str, Any] = {"a": {"nested": 1}}
        override: dict[str, Any] = {"a": "simple"}
        assert _deep_merge(base, override) == {"a": "simple"}

    def test_does_not_mutate_base(self) -> None:
        """Base dict is not mutated."""
        base = {"a": 1}
        _deep_merge(base, {"b": 2})
        assert base == {"a": 1}


class TestLoadConfig:
    """Tests for load_config function."""

    def test_returns_defaults_when_no_files(self, global_config: Path, project_dir: Path) -> None:
        config = load_config(project_dir)

        assert config.logging.level == "INFO"
        assert config.database.busy_timeout_ms == 30000
        assert config.scrape.plain_category == "packages"
        assert config.scrape.forced_recursion == {"legacyPackages": ["darwin"]}

    def test_project_yaml_overrides_global(self, global_config: Path, project_dir: Path) -> None:
        global_config.parent.mkdir(parents=True)
        global_config.write_text("scrape:\n  max_worker_attempts: 5\n  isolate_targets: true\n")
        (project_dir / "pkgdb.yaml").write_text("scrape:\n  max_worker_attempts: 7\n")

        config = load_config(project_dir)

        assert config.scrape.max_worker_attempts == 7
        assert config.scrape.isolate_targets is True

    def test_env_overrides_yaml(
        self, global_config: Path, project_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (project_dir / "pkgdb.yaml").write_text("database:\n  busy_timeout_ms: 1000\n")
        monkeypatch.setenv("PKGDB__DATABASE__BUSY_TIMEOUT_MS", "2000")

        config = load_config(project_dir)

        assert config.database.busy_timeout_ms == 2000

    def test_kwargs_override_env(
        self, global_config: Path, project_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PKGDB__LOGGING__LEVEL", "WARNING")

        config = load_config(project_dir, logging={"level": "DEBUG"})

        assert config.logging.level == "DEBUG"

    def test_invalid_value_raises_config_error(
        self, global_config: Path, project_dir: Path
    ) -> None:
        (project_dir / "pkgdb.yaml").write_text("scrape:\n  max_worker_attempts: 0\n")

        with pytest.raises(ConfigError) as exc_info:
            load_config(project_dir)

        assert "max_worker_attempts" in exc_info.value.details["field"]

    def test_invalid_yaml_raises_config_error(
        self, global_config: Path, project_dir: Path
    ) -> None:
        (project_dir / "pkgdb.yaml").write_text("scrape: [unclosed")

        with pytest.raises(ConfigError):
            load_config(project_dir)


class TestConfigFiles:
    def test_global_file_comes_first(self, global_config: Path, project_dir: Path) -> None:
        assert config_files(project_dir) == (global_config, project_dir / "pkgdb.yaml")
