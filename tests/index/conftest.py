"""Shared fixtures for index tests."""

from __future__ import annotations

import json
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from pkgdb.index import LockedInput, PackageInfo, PkgDb


FINGERPRINT = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def locked_input() -> LockedInput:
    from pkgdb.index import LockedInput

    return LockedInput(
        fingerprint=FINGERPRINT,
        string="path:/nix/store/source",
        attrs={"type": "path", "path": "/nix/store/source"},
    )


@pytest.fixture
def temp_pkgdb(temp_dir: Path, locked_input: LockedInput) -> Generator[PkgDb, None, None]:
    """Create a temporary package set database with schema."""
    from pkgdb.index import PkgDb

    db = PkgDb(temp_dir / "pkgs.sqlite", locked_input)
    yield db
    db.close()


@pytest.fixture
def make_package() -> Callable[..., PackageInfo]:
    from pkgdb.index import PackageInfo

    def _make(name: str = "hello-2.12.1", **overrides: Any) -> PackageInfo:
        pname, _, version = name.partition("-")
        fields: dict[str, Any] = {
            "name": name,
            "pname": pname,
            "version": version or None,
            "semver": version or None,
        }
        fields.update(overrides)
        return PackageInfo(**fields)

    return _make


@pytest.fixture
def write_dump(temp_dir: Path) -> Callable[[dict[str, Any]], Path]:
    """Write a namespace dump to a JSON file."""

    def _write(tree: dict[str, Any], name: str = "dump.json") -> Path:
        path = temp_dir / name
        path.write_text(json.dumps(tree))
        return path

    return _write
