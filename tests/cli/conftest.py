"""Shared fixtures for CLI tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from pkgdb.config import loader


def _drv(name: str, **extra: Any) -> dict[str, Any]:
    return {"type": "derivation", "name": name, "outputs": ["out"], **extra}


TREE: dict[str, Any] = {
    "packages": {
        "x86_64-linux": {"hello": _drv("hello-2.12.1")},
    },
    "legacyPackages": {
        "x86_64-linux": {
            "hello": _drv("hello-2.12.1", meta={"description": "GNU Hello"}),
            "python3Packages": {
                "recurseForDerivations": True,
                "pytest": _drv("python3.11-pytest-8.0.0"),
            },
            "broken": {"__error__": "assertion failed"},
        },
    },
}


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every command from an empty directory with no global config."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setattr(loader, "GLOBAL_CONFIG_PATH", tmp_path / "global.yaml")


@pytest.fixture
def dump(tmp_path: Path) -> Path:
    path = tmp_path / "dump.json"
    path.write_text(json.dumps(TREE))
    return path


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "pkgs.sqlite"
