"""Unit tests for the attribute-set tree store in PkgDb."""

from __future__ import annotations

from pathlib import Path

import pytest

from pkgdb.core.errors import StoreError
from pkgdb.index import ROOT_ID, AttrSetId, LockedInput, PkgDb


class TestAddOrGetAttrSet:
    """Tests for add_or_get_attr_set_id / add_or_get_attr_set_path."""

    def test_new_attr_set_gets_positive_id(self, temp_pkgdb: PkgDb) -> None:
        attr_set_id = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")

        assert attr_set_id > ROOT_ID

    def test_same_name_and_parent_returns_same_id(self, temp_pkgdb: PkgDb) -> None:
        first = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")
        second = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")

        assert first == second
        assert temp_pkgdb.count_attr_sets() == 1

    def test_same_name_under_different_parents_is_distinct(self, temp_pkgdb: PkgDb) -> None:
        packages = temp_pkgdb.add_or_get_attr_set_id("packages")
        legacy = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")

        a = temp_pkgdb.add_or_get_attr_set_id("x86_64-linux", packages)
        b = temp_pkgdb.add_or_get_attr_set_id("x86_64-linux", legacy)

        assert a != b

    def test_new_attr_set_is_not_done(self, temp_pkgdb: PkgDb) -> None:
        attr_set_id = temp_pkgdb.add_or_get_attr_set_id("packages")

        assert temp_pkgdb.completed_attr_set(attr_set_id) is False

    def test_path_resolution_is_stable(self, temp_pkgdb: PkgDb) -> None:
        """Resolving the same path twice yields the same id and creates nothing new."""
        path = ["legacyPackages", "x86_64-linux", "python3Packages"]

        first = temp_pkgdb.add_or_get_attr_set_path(path)
        count = temp_pkgdb.count_attr_sets()
        second = temp_pkgdb.add_or_get_attr_set_path(path)

        assert first == second
        assert count == 3
        assert temp_pkgdb.count_attr_sets() == 3

    def test_empty_path_is_root(self, temp_pkgdb: PkgDb) -> None:
        assert temp_pkgdb.add_or_get_attr_set_path([]) == ROOT_ID

    def test_get_attr_set_path_walks_to_root(self, temp_pkgdb: PkgDb) -> None:
        path = ["legacyPackages", "x86_64-linux", "python3Packages"]
        attr_set_id = temp_pkgdb.add_or_get_attr_set_path(path)

        assert temp_pkgdb.get_attr_set_path(attr_set_id) == path

    def test_get_attr_set_path_unknown_id_raises(self, temp_pkgdb: PkgDb) -> None:
        with pytest.raises(StoreError):
            temp_pkgdb.get_attr_set_path(AttrSetId(12345))

    def test_has_attr_set_does_not_create(self, temp_pkgdb: PkgDb) -> None:
        temp_pkgdb.add_or_get_attr_set_path(["packages", "x86_64-linux"])

        assert temp_pkgdb.has_attr_set(["packages", "x86_64-linux"])
        assert not temp_pkgdb.has_attr_set(["packages", "aarch64-darwin"])
        assert temp_pkgdb.count_attr_sets() == 2

    def test_get_children_sorted_by_name(self, temp_pkgdb: PkgDb) -> None:
        parent = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")
        temp_pkgdb.add_or_get_attr_set_id("x86_64-linux", parent)
        temp_pkgdb.add_or_get_attr_set_id("aarch64-darwin", parent)

        names = [child.attr_name for child in temp_pkgdb.get_children(parent)]

        assert names == ["aarch64-darwin", "x86_64-linux"]


class TestSetPrefixDone:
    """Tests for subtree completion flags."""

    def test_nested_prefix_marks_whole_subtree(self, temp_pkgdb: PkgDb) -> None:
        system = temp_pkgdb.add_or_get_attr_set_path(["legacyPackages", "x86_64-linux"])
        child = temp_pkgdb.add_or_get_attr_set_id("python3Packages", system)
        grandchild = temp_pkgdb.add_or_get_attr_set_id("pytest", child)

        temp_pkgdb.set_prefix_done(system, True)

        assert temp_pkgdb.completed_attr_set(system)
        assert temp_pkgdb.completed_attr_set(child)
        assert temp_pkgdb.completed_attr_set(grandchild)

    def test_siblings_and_ancestors_untouched(self, temp_pkgdb: PkgDb) -> None:
        category = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")
        linux = temp_pkgdb.add_or_get_attr_set_id("x86_64-linux", category)
        darwin = temp_pkgdb.add_or_get_attr_set_id("aarch64-darwin", category)

        temp_pkgdb.set_prefix_done(linux, True)

        assert temp_pkgdb.completed_attr_set(linux)
        assert not temp_pkgdb.completed_attr_set(darwin)
        assert not temp_pkgdb.completed_attr_set(category)

    def test_top_level_prefix_excludes_itself_by_default(self, temp_pkgdb: PkgDb) -> None:
        """A prefix directly under the root only marks its descendants."""
        category = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")
        system = temp_pkgdb.add_or_get_attr_set_id("x86_64-linux", category)

        temp_pkgdb.set_prefix_done(category, True)

        assert not temp_pkgdb.completed_attr_set(category)
        assert temp_pkgdb.completed_attr_set(system)

    def test_top_level_prefix_included_on_request(self, temp_pkgdb: PkgDb) -> None:
        category = temp_pkgdb.add_or_get_attr_set_id("legacyPackages")
        system = temp_pkgdb.add_or_get_attr_set_id("x86_64-linux", category)

        temp_pkgdb.set_prefix_done(category, True, include_top_level=True)

        assert temp_pkgdb.completed_attr_set(category)
        assert temp_pkgdb.completed_attr_set(system)

    def test_accepts_attribute_path(self, temp_pkgdb: PkgDb) -> None:
        system = temp_pkgdb.add_or_get_attr_set_path(["packages", "x86_64-linux"])

        temp_pkgdb.set_prefix_done(["packages", "x86_64-linux"], True)

        assert temp_pkgdb.completed_attr_set(system)

    def test_undo_clears_flags(self, temp_pkgdb: PkgDb) -> None:
        system = temp_pkgdb.add_or_get_attr_set_path(["packages", "x86_64-linux"])
        temp_pkgdb.set_prefix_done(system, True)

        temp_pkgdb.set_prefix_done(system, False)

        assert not temp_pkgdb.completed_attr_set(system)

    def test_root_cannot_be_marked(self, temp_pkgdb: PkgDb) -> None:
        with pytest.raises(StoreError, match="virtual root"):
            temp_pkgdb.set_prefix_done(ROOT_ID, True)

    def test_root_is_never_complete(self, temp_pkgdb: PkgDb) -> None:
        assert temp_pkgdb.completed_attr_set(ROOT_ID) is False


class TestLockedInput:
    """Tests for the recorded source snapshot."""

    def test_input_recorded_on_open(self, temp_pkgdb: PkgDb, locked_input: LockedInput) -> None:
        stored = temp_pkgdb.get_locked_input()

        assert stored == locked_input

    def test_reopen_without_input_reads_it_back(
        self, temp_dir: Path, locked_input: LockedInput
    ) -> None:
        PkgDb(temp_dir / "db.sqlite", locked_input).close()

        with PkgDb.open(temp_dir / "db.sqlite") as db:
            assert db.locked_input == locked_input

    def test_reopen_with_other_input_raises(
        self, temp_dir: Path, locked_input: LockedInput
    ) -> None:
        PkgDb(temp_dir / "db.sqlite", locked_input).close()
        other = LockedInput(fingerprint="f" * 32, string="path:/elsewhere")

        with pytest.raises(StoreError, match="indexes"):
            PkgDb(temp_dir / "db.sqlite", other)

    def test_fingerprint_must_be_128_bit_hex(self) -> None:
        with pytest.raises(ValueError, match="hex"):
            LockedInput(fingerprint="not-a-hash", string="path:/src")
