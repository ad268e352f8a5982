"""Boundary with the evaluation engine that supplies the attribute tree.

The crawler never touches the namespace directly. It asks an Evaluator for
the names under a node and then inspects each child, getting back one of:

- Leaf: the child is a package; its metadata is already extracted
- Container: the child is an attribute set, possibly asking for recursion
- EvalFailure: the namespace's own definitions failed for this child
- ResourceExhausted: evaluation ran out of memory

Evaluators may also raise EvaluationError / ResourceExhaustedError (or
MemoryError); the crawler treats those like the matching variants.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeAlias

from pkgdb.index.models import PackageInfo


@dataclass(frozen=True, slots=True)
class Leaf:
    """Child is an installable package."""

    package: PackageInfo


@dataclass(frozen=True, slots=True)
class Container:
    """Child is an attribute set; ``recurse`` is its own recursion request."""

    handle: Any
    recurse: bool = False


@dataclass(frozen=True, slots=True)
class EvalFailure:
    """Evaluating the child raised an error in the namespace's definitions."""

    message: str


@dataclass(frozen=True, slots=True)
class ResourceExhausted:
    """Evaluating the child ran out of memory."""

    message: str = ""


EvalOutcome: TypeAlias = Leaf | Container | EvalFailure | ResourceExhausted


class Evaluator(Protocol):
    """What the crawler needs from an evaluation engine."""

    def lookup(self, path: Sequence[str]) -> Any:
        """Return the handle of the attribute set at ``path``."""
        ...

    def attr_names(self, handle: Any) -> Iterable[str]:
        """Names of the children of ``handle``."""
        ...

    def inspect(self, handle: Any, attr_name: str) -> EvalOutcome:
        """Evaluate child ``attr_name`` of ``handle``."""
        ...
