"""Crawl engine: walks an evaluated namespace and fills a PkgDb.

One *target* is one attribute set to scrape. ``scrape_target`` processes a
single target: it writes the packages among its children and appends the
recursable child containers to a work queue. Drivers own that queue:

- ``Scraper`` drains it in-process (FIFO) and marks subtrees done as they
  finish.
- ``pkgdb.index.supervisor.Supervisor`` runs every target in a fresh worker
  process so memory exhaustion only costs one target.

Progress is committed per statement. A crawl that stops part way can be
rerun: finished subtrees are skipped and packages already written are kept.
"""

from __future__ import annotations

from collections import deque
from collections.abc import MutableSequence, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from pkgdb.core.errors import EvaluationError, ResourceExhaustedError
from pkgdb.index.eval import (
    Container,
    EvalFailure,
    EvalOutcome,
    Evaluator,
    Leaf,
    ResourceExhausted,
)
from pkgdb.index.models import AttrSetId, is_root

if TYPE_CHECKING:
    from pkgdb.config.models import ScrapeConfig
    from pkgdb.index.pkgdb import PkgDb

logger = structlog.get_logger()


@dataclass(slots=True)
class Target:
    """An attribute set waiting to be scraped."""

    path: tuple[str, ...]
    handle: Any
    parent_id: AttrSetId

    @property
    def attr_path(self) -> str:
        return ".".join(self.path)


class TargetStatus(str, Enum):
    DONE = "done"
    SKIPPED = "skipped"
    EXHAUSTED = "exhausted"


@dataclass
class TargetResult:
    """Outcome of scraping one target."""

    status: TargetStatus
    packages: int = 0
    skipped_errors: int = 0
    children: list[Target] = field(default_factory=list)


@dataclass
class ScrapeStats:
    """Totals for a whole crawl."""

    targets_done: int = 0
    targets_skipped: int = 0
    packages: int = 0
    skipped_errors: int = 0

    def merge(self, other: ScrapeStats) -> None:
        self.targets_done += other.targets_done
        self.targets_skipped += other.targets_skipped
        self.packages += other.packages
        self.skipped_errors += other.skipped_errors

    def add(self, result: TargetResult) -> None:
        if result.status is TargetStatus.SKIPPED:
            self.targets_skipped += 1
        elif result.status is TargetStatus.DONE:
            self.targets_done += 1
        self.packages += result.packages
        self.skipped_errors += result.skipped_errors


def _inspect(evaluator: Evaluator, handle: Any, attr_name: str) -> EvalOutcome:
    """Evaluate one child, folding evaluator exceptions into outcome variants."""
    try:
        return evaluator.inspect(handle, attr_name)
    except EvaluationError as e:
        return EvalFailure(e.details.get("reason") or e.message)
    except ResourceExhaustedError as e:
        return ResourceExhausted(e.details.get("reason") or e.message)
    except MemoryError:
        return ResourceExhausted(f"MemoryError evaluating '{attr_name}'")


def scrape_target(
    db: PkgDb,
    evaluator: Evaluator,
    target: Target,
    todo: MutableSequence[Target],
    settings: ScrapeConfig,
) -> TargetResult:
    """Scrape the immediate children of ``target``.

    Packages are written to ``db``; recursable containers are created as
    attribute sets and appended to ``todo``. Evaluation errors below the
    legacy category are skipped, anywhere else they raise EvaluationError.
    Running out of memory returns an EXHAUSTED result right away, leaving
    the target not done with everything written so far committed.
    """
    if db.completed_attr_set(target.parent_id):
        logger.debug("target_already_done", attr_path=target.attr_path)
        return TargetResult(status=TargetStatus.SKIPPED)

    category = target.path[0] if target.path else ""
    may_recurse = category != settings.plain_category
    result = TargetResult(status=TargetStatus.DONE)

    logger.debug("evaluating_package_set", attr_path=target.attr_path)

    try:
        names = list(evaluator.attr_names(target.handle))
    except (ResourceExhaustedError, MemoryError) as e:
        logger.warning("resource_exhausted", attr_path=target.attr_path, reason=str(e))
        result.status = TargetStatus.EXHAUSTED
        return result

    for attr_name in names:
        if attr_name == settings.recurse_marker:
            continue

        outcome = _inspect(evaluator, target.handle, attr_name)
        child_path = (*target.path, attr_name)

        if isinstance(outcome, Leaf):
            db.add_package(target.parent_id, attr_name, outcome.package)
            result.packages += 1

        elif isinstance(outcome, Container):
            if not may_recurse:
                continue
            if outcome.recurse or settings.forces_recursion(category, attr_name):
                child_id = db.add_or_get_attr_set_id(attr_name, target.parent_id)
                child = Target(path=child_path, handle=outcome.handle, parent_id=child_id)
                logger.debug("pushing_target", attr_path=child.attr_path)
                todo.append(child)
                result.children.append(child)

        elif isinstance(outcome, EvalFailure):
            if category != settings.legacy_category:
                raise EvaluationError.at(child_path, outcome.message)
            logger.debug(
                "skipped_eval_error", attr_path=".".join(child_path), reason=outcome.message
            )
            result.skipped_errors += 1

        elif isinstance(outcome, ResourceExhausted):
            logger.warning(
                "resource_exhausted", attr_path=".".join(child_path), reason=outcome.message
            )
            result.status = TargetStatus.EXHAUSTED
            return result

    return result


class CompletionTracker:
    """Marks attribute sets done once they and every target queued under them finish.

    Each tracked node counts itself plus its unfinished children. When the
    count drops to zero the node's subtree is marked done and the parent's
    count is decremented.
    """

    def __init__(self, db: PkgDb) -> None:
        self.db = db
        self._pending: dict[AttrSetId, int] = {}
        self._parents: dict[AttrSetId, AttrSetId] = {}

    def start(self, attr_set_id: AttrSetId, parent: AttrSetId | None = None) -> None:
        self._pending[attr_set_id] = 1
        if parent is not None:
            self._parents[attr_set_id] = parent
            self._pending[parent] += 1

    def finish(self, attr_set_id: AttrSetId) -> None:
        node: AttrSetId | None = attr_set_id
        while node is not None:
            self._pending[node] -= 1
            if self._pending[node] > 0:
                return
            del self._pending[node]
            if not is_root(node):
                self.db.set_prefix_done(node, True, include_top_level=True)
            node = self._parents.pop(node, None)


class Scraper:
    """
    In-process crawl driver.

    Usage::

        scraper = Scraper(db, JsonTreeEvaluator.from_file(path), config.scrape)
        stats = scraper.scrape(["legacyPackages", "x86_64-linux"])
    """

    def __init__(self, db: PkgDb, evaluator: Evaluator, settings: ScrapeConfig) -> None:
        self.db = db
        self.evaluator = evaluator
        self.settings = settings

    def scrape(self, prefix: Sequence[str]) -> ScrapeStats:
        """Crawl everything under ``prefix``.

        Raises:
            EvaluationError: An evaluation error outside the legacy category.
            ResourceExhaustedError: Evaluation ran out of memory; rerun to resume.
        """
        path = tuple(prefix)
        stats = ScrapeStats()
        root_id = self.db.add_or_get_attr_set_path(path)
        if self.db.completed_attr_set(root_id):
            logger.info("prefix_already_done", attr_path=".".join(path))
            stats.targets_skipped += 1
            return stats

        handle = self.evaluator.lookup(path)
        todo: deque[Target] = deque([Target(path=path, handle=handle, parent_id=root_id)])
        tracker = CompletionTracker(self.db)
        tracker.start(root_id)

        while todo:
            target = todo.popleft()
            result = scrape_target(self.db, self.evaluator, target, todo, self.settings)
            stats.add(result)
            if result.status is TargetStatus.EXHAUSTED:
                raise ResourceExhaustedError.at(target.path, "rerun to resume")
            for child in result.children:
                tracker.start(child.parent_id, target.parent_id)
            tracker.finish(target.parent_id)

        logger.info(
            "scrape_complete",
            attr_path=".".join(path),
            targets=stats.targets_done,
            packages=stats.packages,
            skipped_errors=stats.skipped_errors,
        )
        return stats
