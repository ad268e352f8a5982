"""Package set database: attribute-set tree, descriptions and packages.

PkgDb is the single writer of a package set database. Every write is one
autocommitted statement, and every write is safe to repeat:

- attribute sets and descriptions are get-or-create through a UNIQUE
  constraint (insert, fall back to a lookup on conflict);
- packages are insert-or-ignore / insert-or-replace on
  ``(parent_id, attr_name)``;
- ``attr_sets.done`` marks subtrees whose crawl finished, so a resumed
  crawl can skip them.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import and_, func, insert, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select as select_model

from pkgdb.core.errors import StoreError
from pkgdb.index._internal.db import Database, get_db_versions, init_schema, sqlite_message
from pkgdb.index.models import (
    ROOT_ID,
    AttrSet,
    AttrSetId,
    ConflictPolicy,
    DbVersionInfo,
    Description,
    LockedInput,
    LockedInputRecord,
    Package,
    PackageInfo,
    is_root,
)

if TYPE_CHECKING:
    from sqlalchemy import Table

    from pkgdb.config.models import DatabaseConfig

logger = structlog.get_logger()

_ATTR_SETS: Table = AttrSet.__table__  # type: ignore[attr-defined]
_DESCRIPTIONS: Table = Description.__table__  # type: ignore[attr-defined]
_PACKAGES: Table = Package.__table__  # type: ignore[attr-defined]
_LOCKED_INPUTS: Table = LockedInputRecord.__table__  # type: ignore[attr-defined]

# The subtree root is excluded when its parent is the virtual root unless the
# caller asks for it; see set_prefix_done().
_SUBTREE_SQL = """
    UPDATE attr_sets SET done = :done WHERE id IN (
        WITH RECURSIVE tree (id, parent) AS (
            SELECT id, parent FROM attr_sets WHERE id = :root
            UNION ALL
            SELECT child.id, child.parent FROM attr_sets AS child
            JOIN tree ON child.parent = tree.id
        )
        SELECT tree.id FROM tree {where}
    )
"""


class PkgDb:
    """
    Read/write handle on a package set database.

    Usage::

        with PkgDb(Path("pkgs.sqlite"), locked_input) as db:
            parent = db.add_or_get_attr_set_path(["legacyPackages", "x86_64-linux"])
            db.add_package(parent, "hello", package_info)
            db.set_prefix_done(parent, True)
    """

    def __init__(
        self,
        db_path: Path,
        locked_input: LockedInput | None = None,
        *,
        config: DatabaseConfig | None = None,
    ) -> None:
        """Open or create the database, initialize its schema and record the input."""
        self.db_path = Path(db_path)
        self.db = Database(self.db_path, config)
        init_schema(self.db.engine)
        self.locked_input = self.get_locked_input()
        if locked_input is not None:
            self._check_input(locked_input)
            if self.locked_input is None:
                self._write_input(locked_input)
                self.locked_input = locked_input

    @classmethod
    def open(
        cls,
        db_path: Path,
        locked_input: LockedInput | None = None,
        *,
        config: DatabaseConfig | None = None,
    ) -> PkgDb:
        return cls(db_path, locked_input, config=config)

    def __enter__(self) -> PkgDb:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self.db.dispose()

    # ------------------------------------------------------------------
    # Database metadata
    # ------------------------------------------------------------------

    def _write_input(self, locked_input: LockedInput) -> None:
        stmt = (
            insert(_LOCKED_INPUTS)
            .prefix_with("OR IGNORE")
            .values(
                fingerprint=locked_input.fingerprint,
                string=locked_input.string,
                attrs=locked_input.attrs,
            )
        )
        try:
            with self.db.statement() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError.failed("write locked input info", sqlite_message(e)) from e

    def _check_input(self, locked_input: LockedInput) -> None:
        """A database indexes exactly one source snapshot."""
        if self.locked_input is None or self.locked_input.fingerprint == locked_input.fingerprint:
            return
        self.close()
        raise StoreError.failed(
            "open database",
            f"{self.db_path} indexes {self.locked_input.string} "
            f"({self.locked_input.fingerprint}), not {locked_input.string}",
            fingerprint=self.locked_input.fingerprint,
        )

    def get_locked_input(self) -> LockedInput | None:
        """Return the recorded source snapshot, if any."""
        with self.db.session() as session:
            record = session.exec(select_model(LockedInputRecord)).first()
            if record is None:
                return None
            return LockedInput(
                fingerprint=record.fingerprint, string=record.string, attrs=record.attrs
            )

    def get_db_versions(self) -> DbVersionInfo:
        return get_db_versions(self.db.engine)

    # ------------------------------------------------------------------
    # Identity helpers
    # ------------------------------------------------------------------

    def _add_or_get_id(
        self,
        table: Table,
        key: dict[str, Any],
        operation: str,
        **extra: Any,
    ) -> tuple[int, bool]:
        """Insert a row keyed by a UNIQUE constraint, or find the existing one.

        Returns the row id and whether this call inserted it.
        """
        try:
            with self.db.statement() as conn:
                result = conn.execute(insert(table).values(**key, **extra))
                return int(result.inserted_primary_key[0]), True
        except IntegrityError as e:
            conflict = e
        except SQLAlchemyError as e:
            raise StoreError.failed(operation, sqlite_message(e)) from e

        with self.db.engine.connect() as conn:
            row = conn.execute(
                select(table.c.id).where(and_(*(table.c[k] == v for k, v in key.items())))
            ).first()
        if row is None:
            raise StoreError.failed(operation, sqlite_message(conflict)) from conflict
        return int(row[0]), False

    # ------------------------------------------------------------------
    # Attribute sets
    # ------------------------------------------------------------------

    def add_or_get_attr_set_id(self, attr_name: str, parent: AttrSetId = ROOT_ID) -> AttrSetId:
        """Get or create the attribute set ``attr_name`` under ``parent``."""
        attr_set_id, _ = self._add_or_get_id(
            _ATTR_SETS,
            {"attr_name": attr_name, "parent": parent},
            f"add AttrSet.id 'attr_sets[{parent}].{attr_name}'",
            done=False,
        )
        return AttrSetId(attr_set_id)

    def add_or_get_attr_set_path(self, path: Sequence[str]) -> AttrSetId:
        """Get or create every attribute set along ``path``; return the deepest id."""
        row = ROOT_ID
        for attr_name in path:
            row = self.add_or_get_attr_set_id(attr_name, row)
        return row

    def has_attr_set(self, path: Sequence[str]) -> bool:
        """Whether every attribute set along ``path`` exists, without creating any."""
        row: int = ROOT_ID
        with self.db.engine.connect() as conn:
            for attr_name in path:
                found = conn.execute(
                    select(_ATTR_SETS.c.id).where(
                        _ATTR_SETS.c.attr_name == attr_name, _ATTR_SETS.c.parent == row
                    )
                ).first()
                if found is None:
                    return False
                row = found[0]
        return True

    def get_attr_set_path(self, attr_set_id: AttrSetId) -> list[str]:
        """Return the attribute path of an attribute set, walking up to the root."""
        path: list[str] = []
        current: int = attr_set_id
        with self.db.engine.connect() as conn:
            while not is_root(current):
                row = conn.execute(
                    select(_ATTR_SETS.c.attr_name, _ATTR_SETS.c.parent).where(
                        _ATTR_SETS.c.id == current
                    )
                ).first()
                if row is None:
                    raise StoreError.failed(
                        f"look up AttrSet.id {attr_set_id}", f"no such row: {current}"
                    )
                path.append(row[0])
                current = row[1]
        path.reverse()
        return path

    def completed_attr_set(self, attr_set_id: AttrSetId) -> bool:
        """Whether the subtree under ``attr_set_id`` has been fully crawled."""
        if is_root(attr_set_id):
            return False
        with self.db.engine.connect() as conn:
            done = conn.execute(
                select(_ATTR_SETS.c.done).where(_ATTR_SETS.c.id == attr_set_id)
            ).scalar()
        return bool(done)

    def set_prefix_done(
        self,
        prefix: AttrSetId | Sequence[str],
        done: bool,
        *,
        include_top_level: bool = False,
    ) -> None:
        """Set ``done`` on the subtree rooted at ``prefix`` in one statement.

        A subtree root whose parent is the virtual root is left untouched
        unless ``include_top_level`` is set; its descendants are updated
        either way.
        """
        if isinstance(prefix, int):
            prefix_id = AttrSetId(prefix)
        else:
            prefix_id = self.add_or_get_attr_set_path(prefix)
        if is_root(prefix_id):
            raise StoreError.failed("set AttrSets.done", "the virtual root cannot be marked")

        where = "" if include_top_level else f"WHERE tree.parent != {int(ROOT_ID)}"
        try:
            with self.db.statement() as conn:
                conn.execute(
                    text(_SUBTREE_SQL.format(where=where)),
                    {"done": done, "root": prefix_id},
                )
        except SQLAlchemyError as e:
            attr_path = ".".join(self.get_attr_set_path(prefix_id))
            raise StoreError.failed(
                f"set AttrSets.done for subtree '{attr_path}'", sqlite_message(e)
            ) from e
        logger.debug("prefix_done_set", attr_set_id=prefix_id, done=done)

    # ------------------------------------------------------------------
    # Descriptions
    # ------------------------------------------------------------------

    def add_or_get_description_id(self, description: str) -> int:
        """Get or create the description row holding exactly ``description``."""
        description_id, added = self._add_or_get_id(
            _DESCRIPTIONS,
            {"description": description},
            f"add Description '{description}'",
        )
        logger.debug(
            "description_added" if added else "description_found", description_id=description_id
        )
        return description_id

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def add_package(
        self,
        parent_id: AttrSetId,
        attr_name: str,
        package: PackageInfo,
        *,
        policy: ConflictPolicy = ConflictPolicy.KEEP_EXISTING,
        check_drv: bool = True,
    ) -> int:
        """
        Write a package found at ``parent_id.attr_name``.

        Args:
            parent_id: Attribute set holding the package
            attr_name: Attribute name of the package within its parent
            package: Metadata extracted by the evaluator
            policy: Keep or replace an existing row with the same key
            check_drv: Reject metadata that does not describe a derivation

        Returns:
            Id of the written row, or of the existing row when it was kept.
        """
        if check_drv and not package.is_derivation:
            raise StoreError.package(package.name, "attribute is not a derivation")

        values: dict[str, Any] = {
            "parent_id": parent_id,
            "attr_name": attr_name,
            "name": package.name,
            "pname": package.pname,
            "version": package.version or None,
            "semver": package.semver,
            "outputs": list(package.outputs),
            "outputs_to_install": list(package.outputs_to_install),
        }
        if package.has_meta:
            values["license"] = package.license
            values["broken"] = package.broken
            values["unfree"] = package.unfree
            values["description_id"] = (
                self.add_or_get_description_id(package.description)
                if package.description is not None
                else None
            )
        else:
            values.update(license=None, broken=None, unfree=None, description_id=None)

        stmt = insert(_PACKAGES).prefix_with(policy.sql_prefix).values(**values)
        try:
            with self.db.statement() as conn:
                result = conn.execute(stmt)
                if result.rowcount:
                    return int(result.inserted_primary_key[0]), True
                existing = conn.execute(
                    select(_PACKAGES.c.id).where(
                        _PACKAGES.c.parent_id == parent_id, _PACKAGES.c.attr_name == attr_name
                    )
                ).scalar_one()
                return int(existing)
        except SQLAlchemyError as e:
            raise StoreError.package(package.name, sqlite_message(e)) from e

    def get_package(self, parent_id: AttrSetId, attr_name: str) -> Package | None:
        with self.db.session() as session:
            stmt = select_model(Package).where(
                Package.parent_id == parent_id, Package.attr_name == attr_name
            )
            return session.exec(stmt).first()

    def count_packages(self) -> int:
        with self.db.engine.connect() as conn:
            return int(conn.execute(select(func.count()).select_from(_PACKAGES)).scalar_one())

    def count_attr_sets(self, *, done: bool | None = None) -> int:
        stmt = select(func.count()).select_from(_ATTR_SETS)
        if done is not None:
            stmt = stmt.where(_ATTR_SETS.c.done == done)
        with self.db.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def get_children(self, parent: AttrSetId = ROOT_ID) -> list[AttrSet]:
        """Attribute sets directly under ``parent``, ordered by name."""
        with self.db.session() as session:
            stmt = (
                select_model(AttrSet).where(AttrSet.parent == parent).order_by(AttrSet.attr_name)
            )
            return list(session.exec(stmt).all())
