"""pkgdb error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Store (schema, reads and writes against the SQLite file)
- 4xxx: Evaluation (faults raised by the namespace being indexed)
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Store (3xxx)
    STORE_SCHEMA_ERROR = 3001
    STORE_ERROR = 3002

    # Evaluation (4xxx)
    EVAL_ERROR = 4001
    EVAL_RESOURCE_EXHAUSTED = 4002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class PkgDbError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'STORE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(PkgDbError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class StoreError(PkgDbError):
    """Store fault (DDL or DML against the SQLite file). Never retried internally."""

    @classmethod
    def failed(cls, operation: str, sqlite_error: str, **details: Any) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_ERROR,
            message=f"failed to {operation}: {sqlite_error}",
            details={"operation": operation, "sqlite_error": sqlite_error, **details},
        )

    @classmethod
    def package(cls, full_name: str, sqlite_error: str) -> "StoreError":
        return cls.failed(f"write Package '{full_name}'", sqlite_error, package=full_name)


class SchemaError(StoreError):
    """DDL failure while creating or migrating the database schema."""

    @classmethod
    def failed(cls, operation: str, sqlite_error: str, **details: Any) -> "SchemaError":
        return cls(
            code=ErrorCode.STORE_SCHEMA_ERROR,
            message=f"failed to {operation}: {sqlite_error}",
            details={"operation": operation, "sqlite_error": sqlite_error, **details},
        )


class EvaluationError(PkgDbError):
    """Logic failure inside the namespace's own definitions."""

    @classmethod
    def at(cls, path: list[str] | tuple[str, ...], reason: str) -> "EvaluationError":
        attr_path = ".".join(path)
        return cls(
            code=ErrorCode.EVAL_ERROR,
            message=f"error evaluating attribute '{attr_path}': {reason}",
            details={"attr_path": attr_path, "reason": reason},
        )


class ResourceExhaustedError(PkgDbError):
    """Evaluation ran out of memory; recover by restarting in a fresh process."""

    @classmethod
    def at(cls, path: list[str] | tuple[str, ...], reason: str = "") -> "ResourceExhaustedError":
        attr_path = ".".join(path)
        return cls(
            code=ErrorCode.EVAL_RESOURCE_EXHAUSTED,
            message=f"ran out of memory evaluating attribute '{attr_path}'",
            retryable=True,
            details={"attr_path": attr_path, "reason": reason},
        )


class InternalError(PkgDbError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
