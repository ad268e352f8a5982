"""Process-isolated crawl driver.

The Supervisor owns the queue of target paths and hands each one to a fresh
worker process. A worker re-opens the database, resolves the target's handle
from its path, runs ``scrape_target`` and reports the child paths it queued.
An evaluator that runs out of memory only takes its own worker down: the
target is queued again and retried in a new process, resuming from what the
previous attempt committed.
"""

from __future__ import annotations

import multiprocessing
from collections import deque
from collections.abc import Callable, Sequence
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from pkgdb.config.models import DatabaseConfig, LoggingConfig, ScrapeConfig
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
from pkgdb.core.logging import configure_logging, get_run_id, set_run_id
from pkgdb.index.eval import Evaluator
from pkgdb.index.models import LockedInput
from pkgdb.index.pkgdb import PkgDb
from pkgdb.index.scrape import CompletionTracker, ScrapeStats, Target, TargetStatus, scrape_target

logger = structlog.get_logger()

EvaluatorFactory = Callable[[], Evaluator]

_ERROR_TYPES: dict[int, type[PkgDbError]] = {
    ErrorCode.CONFIG_PARSE_ERROR: ConfigError,
    ErrorCode.CONFIG_INVALID_VALUE: ConfigError,
    ErrorCode.STORE_SCHEMA_ERROR: SchemaError,
    ErrorCode.STORE_ERROR: StoreError,
    ErrorCode.EVAL_ERROR: EvaluationError,
    ErrorCode.EVAL_RESOURCE_EXHAUSTED: ResourceExhaustedError,
    ErrorCode.INTERNAL_ERROR: InternalError,
}


def error_from_dict(data: dict[str, Any]) -> PkgDbError:
    """Rebuild an error serialized with ``PkgDbError.to_dict()``."""
    code = ErrorCode(data["code"])
    error_type = _ERROR_TYPES.get(code, InternalError)
    return error_type(
        code=code,
        message=data["message"],
        retryable=data.get("retryable", False),
        details=data.get("details", {}),
    )


@dataclass
class WorkerReport:
    """What a worker sends back after scraping one target."""

    status: TargetStatus | None = None
    children: list[tuple[str, ...]] = field(default_factory=list)
    packages: int = 0
    skipped_errors: int = 0
    error: dict[str, Any] | None = None


def _scrape_in_worker(
    db_path: str,
    db_config: DatabaseConfig,
    settings: ScrapeConfig,
    evaluator_factory: EvaluatorFactory,
    path: tuple[str, ...],
    run_id: str | None,
    log_config: LoggingConfig | None,
) -> WorkerReport:
    """Scrape one target in a worker process (worker function)."""
    if log_config is not None:
        configure_logging(config=log_config)
    set_run_id(run_id)
    try:
        evaluator = evaluator_factory()
        with PkgDb(Path(db_path), config=db_config) as db:
            parent_id = db.add_or_get_attr_set_path(path)
            handle = evaluator.lookup(path)
            todo: list[Target] = []
            result = scrape_target(
                db, evaluator, Target(path=path, handle=handle, parent_id=parent_id), todo, settings
            )
    except (ResourceExhaustedError, MemoryError):
        return WorkerReport(status=TargetStatus.EXHAUSTED)
    except PkgDbError as e:
        return WorkerReport(error=e.to_dict())
    except Exception as e:
        error = InternalError.unexpected(repr(e), attr_path=".".join(path))
        return WorkerReport(error=error.to_dict())

    return WorkerReport(
        status=result.status,
        children=[child.path for child in result.children],
        packages=result.packages,
        skipped_errors=result.skipped_errors,
    )


class Supervisor:
    """
    Crawl driver that scrapes each target in its own worker process.

    ``evaluator_factory`` runs inside the worker and must be picklable, e.g.
    ``functools.partial(load_json_evaluator, path)``.
    """

    def __init__(
        self,
        db_path: Path,
        locked_input: LockedInput | None,
        evaluator_factory: EvaluatorFactory,
        settings: ScrapeConfig,
        *,
        db_config: DatabaseConfig | None = None,
        log_config: LoggingConfig | None = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.locked_input = locked_input
        self.evaluator_factory = evaluator_factory
        self.settings = settings
        self.db_config = db_config or DatabaseConfig()
        self.log_config = log_config
        self._mp_context = multiprocessing.get_context("spawn")

    def _new_executor(self) -> ProcessPoolExecutor:
        # One task per process: every target starts from a clean heap.
        return ProcessPoolExecutor(
            max_workers=1, mp_context=self._mp_context, max_tasks_per_child=1
        )

    def _attempt(self, executor: ProcessPoolExecutor, path: tuple[str, ...]) -> WorkerReport:
        future = executor.submit(
            _scrape_in_worker,
            str(self.db_path),
            self.db_config,
            self.settings,
            self.evaluator_factory,
            path,
            get_run_id(),
            self.log_config,
        )
        return future.result()

    def run(self, prefix: Sequence[str]) -> ScrapeStats:
        """Crawl everything under ``prefix``.

        Raises:
            EvaluationError: A worker hit an evaluation error outside the legacy category.
            ResourceExhaustedError: A target kept exhausting its worker.
        """
        if get_run_id() is None:
            set_run_id()
        root = tuple(prefix)
        stats = ScrapeStats()

        with PkgDb(self.db_path, self.locked_input, config=self.db_config) as db:
            root_id = db.add_or_get_attr_set_path(root)
            if db.completed_attr_set(root_id):
                logger.info("prefix_already_done", attr_path=".".join(root))
                stats.targets_skipped += 1
                return stats

            tracker = CompletionTracker(db)
            tracker.start(root_id)
            ids = {root: root_id}
            todo: deque[tuple[str, ...]] = deque([root])
            attempts: dict[tuple[str, ...], int] = {}
            executor = self._new_executor()
            try:
                while todo:
                    path = todo.popleft()
                    attempts[path] = attempts.get(path, 0) + 1
                    try:
                        report = self._attempt(executor, path)
                    except BrokenProcessPool:
                        logger.warning("worker_died", attr_path=".".join(path))
                        executor.shutdown(wait=False, cancel_futures=True)
                        executor = self._new_executor()
                        report = WorkerReport(status=TargetStatus.EXHAUSTED)

                    if report.error is not None:
                        raise error_from_dict(report.error)

                    if report.status is TargetStatus.EXHAUSTED:
                        if attempts[path] >= self.settings.max_worker_attempts:
                            raise ResourceExhaustedError.at(
                                path, f"gave up after {attempts[path]} attempts"
                            )
                        logger.info(
                            "restarting_target", attr_path=".".join(path), attempt=attempts[path]
                        )
                        todo.appendleft(path)
                        continue

                    stats.packages += report.packages
                    stats.skipped_errors += report.skipped_errors
                    if report.status is TargetStatus.SKIPPED:
                        stats.targets_skipped += 1
                    else:
                        stats.targets_done += 1

                    for child in report.children:
                        ids[child] = db.add_or_get_attr_set_path(child)
                        tracker.start(ids[child], ids[path])
                        todo.append(child)
                    tracker.finish(ids.pop(path))
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

        logger.info(
            "scrape_complete",
            attr_path=".".join(root),
            targets=stats.targets_done,
            packages=stats.packages,
            skipped_errors=stats.skipped_errors,
        )
        return stats
