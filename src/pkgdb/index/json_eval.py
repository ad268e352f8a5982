"""Evaluator over a namespace dump stored as JSON or YAML.

The dump is a nested mapping shaped like an evaluated package set:

    {
      "legacyPackages": {
        "x86_64-linux": {
          "hello": {
            "type": "derivation",
            "name": "hello-2.12.1",
            "outputs": ["out"],
            "meta": {"description": "A program that produces a familiar greeting",
                     "license": {"spdxId": "GPL-3.0-or-later"}}
          },
          "pythonPackages": {"recurseForDerivations": true, "...": "..."},
          "broken": {"__error__": "assertion failed"},
          "huge": {"__oom__": true}
        }
      }
    }

``__error__`` and ``__oom__`` nodes stand in for evaluation failures so crawl
recovery can be exercised without a real evaluator.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml

from pkgdb.core.errors import EvaluationError, ResourceExhaustedError
from pkgdb.index.eval import Container, EvalFailure, EvalOutcome, Leaf, ResourceExhausted
from pkgdb.index.models import LockedInput, PackageInfo

ERROR_MARKER = "__error__"
OOM_MARKER = "__oom__"

# A version starts at the first dash followed by something other than a letter.
_NAME_VERSION_RE = re.compile(r"^(?P<pname>.+?)-(?P<version>[^a-zA-Z].*)$")
_SEMVER_RE = re.compile(
    r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?P<pre>-[A-Za-z][0-9A-Za-z.-]*)?(?P<build>\+[0-9A-Za-z.-]+)?$"
)


def split_name(name: str) -> tuple[str, str]:
    """Split ``hello-2.12.1`` into ``("hello", "2.12.1")``."""
    match = _NAME_VERSION_RE.match(name)
    if match is None:
        return name, ""
    return match.group("pname"), match.group("version")


def coerce_semver(version: str | None) -> str | None:
    """Coerce a version string to ``MAJOR.MINOR.PATCH``, or None if it is not one.

    Missing minor/patch components are zero-filled, a leading ``v`` and
    leading zeros are dropped. Date-like versions (``2024-01-01``) are not
    semantic versions.
    """
    if not version:
        return None
    match = _SEMVER_RE.match(version.strip())
    if match is None:
        return None
    parts = [int(match.group(k) or 0) for k in ("major", "minor", "patch")]
    semver = ".".join(str(p) for p in parts)
    return semver + (match.group("pre") or "") + (match.group("build") or "")


def _license_string(license_: Any) -> str | None:
    if isinstance(license_, str):
        return license_
    if isinstance(license_, Mapping):
        for key in ("spdxId", "shortName", "fullName"):
            if isinstance(license_.get(key), str):
                return str(license_[key])
        return None
    if isinstance(license_, list) and license_:
        return _license_string(license_[0])
    return None


def _optional_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def package_info(node: Mapping[str, Any]) -> PackageInfo:
    """Extract package metadata from a derivation node."""
    full_name = str(node.get("name", ""))
    parsed_pname, parsed_version = split_name(full_name)
    pname = str(node.get("pname") or parsed_pname)
    version = str(node.get("version") or parsed_version)

    outputs = [str(o) for o in node.get("outputs", ["out"])]
    meta = node.get("meta")
    has_meta = isinstance(meta, Mapping)

    outputs_to_install: list[str] | None = None
    if has_meta and isinstance(meta.get("outputsToInstall"), list):  # type: ignore[union-attr]
        outputs_to_install = [str(o) for o in meta["outputsToInstall"]]  # type: ignore[index]
    if outputs_to_install is None:
        # Everything up to and including "out"
        outputs_to_install = []
        for output in outputs:
            outputs_to_install.append(output)
            if output == "out":
                break

    info = PackageInfo(
        name=full_name,
        pname=pname,
        version=version or None,
        semver=coerce_semver(version),
        outputs=outputs,
        outputs_to_install=outputs_to_install,
        has_meta=has_meta,
        is_derivation=node.get("type") == "derivation",
    )
    if has_meta:
        description = meta.get("description")  # type: ignore[union-attr]
        info.license = _license_string(meta.get("license"))  # type: ignore[union-attr]
        info.broken = _optional_bool(meta.get("broken"))  # type: ignore[union-attr]
        info.unfree = _optional_bool(meta.get("unfree"))  # type: ignore[union-attr]
        info.description = description if isinstance(description, str) else None
    return info


class JsonTreeEvaluator:
    """Evaluator backed by an in-memory namespace dump. Handles are the mappings."""

    def __init__(
        self,
        tree: Mapping[str, Any],
        *,
        recurse_marker: str = "recurseForDerivations",
    ) -> None:
        self.tree = tree
        self.recurse_marker = recurse_marker

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> JsonTreeEvaluator:
        return cls(load_tree(path), **kwargs)

    def lookup(self, path: Sequence[str]) -> Any:
        node: Any = self.tree
        for depth, attr_name in enumerate(path):
            if not isinstance(node, Mapping) or attr_name not in node:
                raise EvaluationError.at(path[: depth + 1], "attribute missing")
            node = node[attr_name]
            if isinstance(node, Mapping):
                if node.get(OOM_MARKER):
                    raise ResourceExhaustedError.at(path[: depth + 1])
                if ERROR_MARKER in node:
                    raise EvaluationError.at(path[: depth + 1], str(node[ERROR_MARKER]))
        return node

    def attr_names(self, handle: Any) -> Iterable[str]:
        if not isinstance(handle, Mapping):
            return []
        return list(handle.keys())

    def inspect(self, handle: Any, attr_name: str) -> EvalOutcome:
        node = handle[attr_name]
        if not isinstance(node, Mapping):
            return Container(node, recurse=False)
        if node.get(OOM_MARKER):
            return ResourceExhausted(f"out of memory evaluating '{attr_name}'")
        if ERROR_MARKER in node:
            return EvalFailure(str(node[ERROR_MARKER]))
        if node.get("type") == "derivation":
            return Leaf(package_info(node))
        return Container(node, recurse=node.get(self.recurse_marker) is True)


def load_tree(path: Path) -> dict[str, Any]:
    """Read a namespace dump; ``.yaml``/``.yml`` as YAML, anything else as JSON."""
    with path.open() as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f) or {}
        else:
            data = json.load(f)
    if not isinstance(data, dict):
        raise EvaluationError.at([], f"namespace dump {path} is not a mapping")
    return data


def load_json_evaluator(
    path: Path, recurse_marker: str = "recurseForDerivations"
) -> JsonTreeEvaluator:
    """Module-level factory, picklable for worker processes."""
    return JsonTreeEvaluator.from_file(Path(path), recurse_marker=recurse_marker)


def fingerprint_file(path: Path) -> str:
    """128-bit BLAKE2b digest of a file, as hex."""
    digest = hashlib.blake2b(digest_size=16)
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            digest.update(chunk)
    return digest.hexdigest()


def locked_input_for(path: Path) -> LockedInput:
    """Describe a namespace dump file as the database's locked input."""
    resolved = path.resolve()
    return LockedInput(
        fingerprint=fingerprint_file(resolved),
        string=f"path:{resolved}",
        attrs={"type": "path", "path": str(resolved)},
    )
