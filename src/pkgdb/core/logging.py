"""Structured logging shared by the CLI, the supervisor and its workers.

Events are snake_case with keyword context (``logger.info("scrape_complete",
packages=12)``). Every event carries:

- ``run_id`` while a scrape is running, so a supervisor's events can be
  matched with those of the workers it spawned;
- ``worker`` (the pid) when emitted from a worker process.

Outputs (console or JSON, to stderr/stdout/a file) come from LoggingConfig.
"""

from __future__ import annotations

import logging
import multiprocessing
import os
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from pkgdb.config.models import LoggingConfig, LogOutputConfig

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)
_log_files: list[Path] = []


def get_run_id() -> str | None:
    return _run_id.get()


def set_run_id(run_id: str | None = None) -> str:
    """Start (or join, when ``run_id`` is given) a scrape run."""
    rid = run_id or uuid4().hex[:12]
    _run_id.set(rid)
    return rid


def clear_run_id() -> None:
    _run_id.set(None)


def get_log_file_path() -> Path | None:
    """First file output of the current configuration, for "see log" hints."""
    return _log_files[0] if _log_files else None


def _add_run_context(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    rid = _run_id.get()
    if rid is not None:
        event_dict.setdefault("run_id", rid)
    if multiprocessing.parent_process() is not None:
        event_dict.setdefault("worker", os.getpid())
    return event_dict


def _level(name: str | None, default: int) -> int:
    if name is None:
        return default
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else default


def _handler_for(
    output: LogOutputConfig, pre_chain: list[Any], default_level: int
) -> logging.Handler:
    handler: logging.Handler
    if output.destination == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    elif output.destination == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")
        _log_files.append(path)

    if output.format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        stream = getattr(handler, "stream", None)
        renderer = structlog.dev.ConsoleRenderer(
            colors=bool(stream is not None and stream.isatty()),
            pad_event_to=0,
            pad_level=False,
        )

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    handler.setLevel(_level(output.level, default_level))
    return handler


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Route structlog through stdlib logging to the configured outputs.

    Args:
        config: Full logging configuration; overrides the simple params
        json_format: Single stderr output rendered as JSON
        level: Root level for the single-output setup
    """
    from pkgdb.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level.upper(),  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    root_level = _level(config.level, logging.INFO)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _add_run_context,
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    _log_files.clear()

    root.setLevel(root_level)
    for output in config.outputs:
        root.addHandler(_handler_for(output, pre_chain, root_level))

    # Per-statement SQL logging is opt-in through sqlalchemy's own echo flag
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]
