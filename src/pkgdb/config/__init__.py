"""Config module exports."""

from pkgdb.config.loader import load_config
from pkgdb.config.models import (
    DatabaseConfig,
    LoggingConfig,
    PkgDbConfig,
    ScrapeConfig,
)

__all__ = [
    "load_config",
    "PkgDbConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "ScrapeConfig",
]
