"""Index module - package set database and the crawler that fills it.

Public API:
- PkgDb: read/write handle on a package set database
- scrape_target, Scraper: crawl one target / a whole prefix in-process
- Supervisor: crawl a prefix with every target in a fresh worker process
- JsonTreeEvaluator: evaluator over a JSON or YAML namespace dump

Internal implementations are in `pkgdb.index._internal/`.
"""

from pkgdb.index.eval import (
    Container,
    EvalFailure,
    EvalOutcome,
    Evaluator,
    Leaf,
    ResourceExhausted,
)
from pkgdb.index.json_eval import (
    JsonTreeEvaluator,
    fingerprint_file,
    load_json_evaluator,
    locked_input_for,
)
from pkgdb.index.models import (
    ROOT_ID,
    AttrSet,
    AttrSetId,
    ConflictPolicy,
    DbVersionInfo,
    Description,
    LockedInput,
    Package,
    PackageInfo,
    is_root,
)
from pkgdb.index.pkgdb import PkgDb
from pkgdb.index.scrape import (
    CompletionTracker,
    Scraper,
    ScrapeStats,
    Target,
    TargetResult,
    TargetStatus,
    scrape_target,
)
from pkgdb.index.supervisor import Supervisor

__all__ = [
    # Store
    "PkgDb",
    "ROOT_ID",
    "AttrSet",
    "AttrSetId",
    "ConflictPolicy",
    "DbVersionInfo",
    "Description",
    "LockedInput",
    "Package",
    "PackageInfo",
    "is_root",
    # Evaluation
    "Evaluator",
    "EvalOutcome",
    "Leaf",
    "Container",
    "EvalFailure",
    "ResourceExhausted",
    "JsonTreeEvaluator",
    "fingerprint_file",
    "load_json_evaluator",
    "locked_input_for",
    # Crawl
    "CompletionTracker",
    "Scraper",
    "ScrapeStats",
    "Supervisor",
    "Target",
    "TargetResult",
    "TargetStatus",
    "scrape_target",
]
