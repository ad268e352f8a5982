"""Tests for pkgdb scrape command."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from pkgdb.cli.main import cli
from pkgdb.cli.scrape import default_prefixes
from pkgdb.config.constants import RESTART_EXIT_CODE
from pkgdb.config.models import PkgDbConfig
from pkgdb.index import JsonTreeEvaluator, PkgDb


class TestScrapeCommand:
    def test_scrapes_given_prefix(self, runner: CliRunner, dump: Path, db_path: Path) -> None:
        args = ["scrape", str(dump), str(db_path), "legacyPackages.x86_64-linux"]

        result = runner.invoke(cli, args)

        assert result.exit_code == 0, result.output
        assert "Scraped" in result.output
        with PkgDb(db_path) as db:
            assert db.count_packages() == 2
            assert db.completed_attr_set(
                db.add_or_get_attr_set_path(["legacyPackages", "x86_64-linux"])
            )
            assert not db.has_attr_set(["packages", "x86_64-linux"])

    def test_without_prefix_scrapes_every_system(
        self, runner: CliRunner, dump: Path, db_path: Path
    ) -> None:
        result = runner.invoke(cli, ["scrape", str(dump), str(db_path)])

        assert result.exit_code == 0, result.output
        with PkgDb(db_path) as db:
            assert db.count_packages() == 3

    @pytest.mark.integration
    def test_isolated_scrape(self, runner: CliRunner, dump: Path, db_path: Path) -> None:
        result = runner.invoke(
            cli, ["scrape", str(dump), str(db_path), "legacyPackages.x86_64-linux", "--isolate"]
        )

        assert result.exit_code == 0, result.output
        with PkgDb(db_path) as db:
            assert db.count_packages() == 2

    def test_records_source(self, runner: CliRunner, dump: Path, db_path: Path) -> None:
        runner.invoke(cli, ["scrape", str(dump), str(db_path), "packages.x86_64-linux"])

        with PkgDb(db_path) as db:
            assert db.locked_input is not None
            assert db.locked_input.string == f"path:{dump.resolve()}"

    def test_rerun_is_idempotent(self, runner: CliRunner, dump: Path, db_path: Path) -> None:
        args = ["scrape", str(dump), str(db_path)]
        runner.invoke(cli, args)

        result = runner.invoke(cli, args)

        assert result.exit_code == 0, result.output
        with PkgDb(db_path) as db:
            assert db.count_packages() == 3

    def test_exhaustion_exits_with_restart_code(
        self, runner: CliRunner, tmp_path: Path, db_path: Path
    ) -> None:
        dump = tmp_path / "oom.json"
        tree = {"legacyPackages": {"x86_64-linux": {"huge": {"__oom__": True}}}}
        dump.write_text(json.dumps(tree))

        result = runner.invoke(cli, ["scrape", str(dump), str(db_path)])

        assert result.exit_code == RESTART_EXIT_CODE
        assert "rerun" in result.output

    def test_exhaustion_points_at_log_file(
        self, runner: CliRunner, tmp_path: Path, db_path: Path
    ) -> None:
        log_file = tmp_path / "logs" / "pkgdb.log"
        Path("pkgdb.yaml").write_text(
            "logging:\n"
            "  outputs:\n"
            f"    - destination: {log_file}\n"
            "      format: json\n"
        )
        dump = tmp_path / "oom.json"
        tree = {"legacyPackages": {"x86_64-linux": {"huge": {"__oom__": True}}}}
        dump.write_text(json.dumps(tree))

        result = runner.invoke(cli, ["scrape", str(dump), str(db_path)])

        assert result.exit_code == RESTART_EXIT_CODE
        assert f"Details in {log_file}" in result.output
        assert "resource_exhausted" in log_file.read_text()

    def test_category_level_marker_is_not_a_system(
        self, runner: CliRunner, tmp_path: Path, db_path: Path
    ) -> None:
        dump = tmp_path / "marked.json"
        tree = {
            "legacyPackages": {
                "recurseForDerivations": True,
                "x86_64-linux": {"hello": {"type": "derivation", "name": "hello-2.12.1"}},
            }
        }
        dump.write_text(json.dumps(tree))

        result = runner.invoke(cli, ["scrape", str(dump), str(db_path)])

        assert result.exit_code == 0, result.output
        assert "recurseForDerivations" not in result.output
        with PkgDb(db_path) as db:
            assert db.count_packages() == 1
            assert not db.has_attr_set(["legacyPackages", "recurseForDerivations"])

    def test_evaluation_error_fails(self, runner: CliRunner, tmp_path: Path, db_path: Path) -> None:
        dump = tmp_path / "bad.json"
        dump.write_text(json.dumps({"packages": {"x86_64-linux": {"bad": {"__error__": "boom"}}}}))

        result = runner.invoke(cli, ["scrape", str(dump), str(db_path)])

        assert result.exit_code == 1
        assert "EVAL_ERROR" in result.output

    def test_invalid_prefix_rejected(self, runner: CliRunner, dump: Path, db_path: Path) -> None:
        result = runner.invoke(cli, ["scrape", str(dump), str(db_path), "legacyPackages..x"])

        assert result.exit_code == 2
        assert "invalid attribute path" in result.output

    def test_other_source_rejected(
        self, runner: CliRunner, dump: Path, tmp_path: Path, db_path: Path
    ) -> None:
        runner.invoke(cli, ["scrape", str(dump), str(db_path), "packages.x86_64-linux"])
        other = tmp_path / "other.json"
        other.write_text(json.dumps({"packages": {"x86_64-linux": {}}}))

        result = runner.invoke(cli, ["scrape", str(other), str(db_path)])

        assert result.exit_code == 1
        assert "STORE_ERROR" in result.output


class TestDefaultPrefixes:
    def test_skips_marker_and_non_mapping_children(self) -> None:
        evaluator = JsonTreeEvaluator(
            {
                "packages": {"x86_64-linux": {}, "notes": "not a system"},
                "legacyPackages": {"recurseForDerivations": True, "x86_64-linux": {}},
            }
        )

        assert default_prefixes(evaluator, PkgDbConfig()) == [
            ("packages", "x86_64-linux"),
            ("legacyPackages", "x86_64-linux"),
        ]
