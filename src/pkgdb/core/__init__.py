"""Core module exports."""

from pkgdb.core.errors import (
    ConfigError,
    ErrorCode,
    EvaluationError,
    InternalError,
    PkgDbError,
    ResourceExhaustedError,
    SchemaError,
    StoreError,
)
from pkgdb.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "PkgDbError",
    "ErrorCode",
    "ConfigError",
    "SchemaError",
    "StoreError",
    "EvaluationError",
    "ResourceExhaustedError",
    "InternalError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
