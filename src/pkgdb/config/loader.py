"""Resolve a PkgDbConfig from YAML files, the environment and overrides.

Later layers win:

- built-in defaults
- ``~/.config/pkgdb/config.yaml``
- ``pkgdb.yaml`` in the project directory
- ``PKGDB__SECTION__KEY`` environment variables
- keyword overrides passed to ``load_config``
"""

from pathlib import Path
from typing import Any, ClassVar

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from pkgdb.config.models import DatabaseConfig, LoggingConfig, PkgDbConfig, ScrapeConfig
from pkgdb.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/pkgdb/config.yaml").expanduser()
PROJECT_CONFIG_NAME = "pkgdb.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    return data or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def config_files(project_dir: Path) -> tuple[Path, ...]:
    """YAML files consulted for ``project_dir``, lowest precedence first."""
    return (GLOBAL_CONFIG_PATH, project_dir / PROJECT_CONFIG_NAME)


class YamlFilesSource(PydanticBaseSettingsSource):
    """Deep-merges a sequence of YAML files, later files overriding earlier ones."""

    def __init__(self, settings_cls: type[BaseSettings], files: tuple[Path, ...]) -> None:
        super().__init__(settings_cls)
        merged: dict[str, Any] = {}
        for path in files:
            merged = _deep_merge(merged, _load_yaml(path))
        self.data = merged

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = self.data.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return self.data


class PkgDbSettings(BaseSettings):
    """Settings root. Subclasses pick the YAML files through ``config_files``."""

    model_config = SettingsConfigDict(
        env_prefix="PKGDB__",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    config_files: ClassVar[tuple[Path, ...]] = ()

    logging: LoggingConfig = LoggingConfig()
    database: DatabaseConfig = DatabaseConfig()
    scrape: ScrapeConfig = ScrapeConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, env_settings, YamlFilesSource(settings_cls, cls.config_files))


def _settings_for(files: tuple[Path, ...]) -> type[PkgDbSettings]:
    class ProjectSettings(PkgDbSettings):
        config_files: ClassVar[tuple[Path, ...]] = files

    return ProjectSettings


def load_config(project_dir: Path | None = None, **overrides: Any) -> PkgDbConfig:
    """Build the effective configuration for ``project_dir`` (default: cwd).

    Raises:
        ConfigError: A YAML file does not parse, or a value fails validation.
    """
    files = config_files(project_dir or Path.cwd())
    try:
        settings = _settings_for(files)(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e
    return PkgDbConfig.model_validate(settings.model_dump())
