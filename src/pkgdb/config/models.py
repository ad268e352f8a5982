"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (PKGDB__SECTION__KEY)
3. Project YAML (./pkgdb.yaml)
4. Global YAML (~/.config/pkgdb/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    PKGDB__<SECTION>__<KEY>=<VALUE>

Examples:
    PKGDB__LOGGING__LEVEL=DEBUG
    PKGDB__DATABASE__BUSY_TIMEOUT_MS=60000
    PKGDB__SCRAPE__MAX_WORKER_ATTEMPTS=5
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        PKGDB__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every skipped evaluation error.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class DatabaseConfig(BaseModel):
    """SQLite connection configuration.

    Env vars:
        PKGDB__DATABASE__BUSY_TIMEOUT_MS: SQLite busy timeout
        PKGDB__DATABASE__CACHE_SIZE_KB: SQLite page cache size
    """

    busy_timeout_ms: int = Field(
        default=30000,
        description="How long a writer waits on another process's file lock (ms).",
    )
    cache_size_kb: int = Field(
        default=64000,
        description="SQLite page cache size (KiB).",
    )

    @field_validator("busy_timeout_ms", "cache_size_kb")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Must be >= 0, got {v}")
        return v


class ScrapeConfig(BaseModel):
    """Crawl behavior.

    The category names follow the conventions of the namespace being indexed:
    ``packages`` is always exactly one level deep, ``legacyPackages`` is
    best-effort and may contain broken entries.

    Env vars:
        PKGDB__SCRAPE__MAX_WORKER_ATTEMPTS: Worker restarts per target
        PKGDB__SCRAPE__ISOLATE_TARGETS: Run each target in a worker process
    """

    plain_category: str = Field(
        default="packages",
        description="Top-level category whose children are all leaves; never recursed.",
    )
    legacy_category: str = Field(
        default="legacyPackages",
        description="Top-level category whose evaluation errors are skipped.",
    )
    recurse_marker: str = Field(
        default="recurseForDerivations",
        description="Attribute a container sets to true to ask for recursion.",
    )
    forced_recursion: dict[str, list[str]] = Field(
        default_factory=lambda: {"legacyPackages": ["darwin"]},
        description="Children always recursed into, keyed by top-level category. "
        "Compensates for containers that forget to set the recurse marker.",
    )
    max_worker_attempts: int = Field(
        default=3,
        description="Times a target is attempted in a fresh worker before giving up.",
    )
    isolate_targets: bool = Field(
        default=False,
        description="Run every target in its own worker process.",
    )

    @field_validator("max_worker_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Must be >= 1, got {v}")
        return v

    def forces_recursion(self, category: str, attr_name: str) -> bool:
        return attr_name in self.forced_recursion.get(category, ())


class PkgDbConfig(BaseModel):
    """Root configuration for pkgdb.

    All settings can be configured via:
    1. Environment variables: PKGDB__SECTION__KEY
    2. YAML config files (project or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)
