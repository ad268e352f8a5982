"""Schema and version lifecycle for the package set database.

Tables hold irreplaceable crawl results: they are only ever created when
missing. Views are derived state: when the recorded views version is older
than VIEWS_SCHEMA_VERSION every existing view is dropped (whatever its name,
older generations may define views this code no longer knows about) and the
current definitions are recreated.

Call init_schema() on every open; it is idempotent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pkgdb.config.constants import (
    ENGINE_VERSION,
    ENGINE_VERSION_NAME,
    TABLES_SCHEMA_VERSION,
    TABLES_SCHEMA_VERSION_NAME,
    VIEWS_SCHEMA_VERSION,
    VIEWS_SCHEMA_VERSION_NAME,
)
from pkgdb.core.errors import SchemaError, StoreError
from pkgdb.index._internal.db.database import sqlite_message
from pkgdb.index.models import TABLES, DbVersionInfo

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = structlog.get_logger()


VIEWS: dict[str, str] = {
    # Full attribute path of every attribute set, as a JSON array.
    "v_attr_paths": """
        CREATE VIEW IF NOT EXISTS v_attr_paths AS
        WITH RECURSIVE tree (id, parent, depth, attr_path) AS (
            SELECT id, parent, 0, json_array(attr_name)
            FROM attr_sets WHERE parent = 0
            UNION ALL
            SELECT child.id, child.parent, tree.depth + 1,
                   json_insert(tree.attr_path, '$[#]', child.attr_name)
            FROM attr_sets AS child
            JOIN tree ON child.parent = tree.id
        )
        SELECT id, parent, depth, attr_path FROM tree
    """,
    # Packages with their absolute attribute path and description text.
    "v_packages": """
        CREATE VIEW IF NOT EXISTS v_packages AS
        SELECT p.id,
               p.parent_id,
               json_insert(ap.attr_path, '$[#]', p.attr_name) AS attr_path,
               p.attr_name,
               p.name,
               p.pname,
               p.version,
               p.semver,
               p.license,
               p.broken,
               p.unfree,
               d.description,
               p.outputs,
               p.outputs_to_install
        FROM packages AS p
        LEFT JOIN v_attr_paths AS ap ON ap.id = p.parent_id
        LEFT JOIN descriptions AS d ON d.id = p.description_id
    """,
}


def init_schema(engine: Engine) -> None:
    """Create tables, record versions and bring views up to date."""
    _init_tables(engine)
    _init_versions(engine)

    if get_db_versions(engine).views < VIEWS_SCHEMA_VERSION:
        _update_views(engine)
    else:
        with engine.begin() as conn:
            _init_views(conn)


def _init_tables(engine: Engine) -> None:
    for model in TABLES:
        table = model.__table__  # type: ignore[attr-defined]
        try:
            table.create(engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise SchemaError.failed(f"initialize {table.name} table", sqlite_message(e)) from e


def _init_versions(engine: Engine) -> None:
    try:
        with engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT OR IGNORE INTO db_versions (name, version) VALUES"
                    " (:engine_name, :engine), (:tables_name, :tables), (:views_name, :views)"
                ),
                {
                    "engine_name": ENGINE_VERSION_NAME,
                    "engine": ENGINE_VERSION,
                    "tables_name": TABLES_SCHEMA_VERSION_NAME,
                    "tables": TABLES_SCHEMA_VERSION,
                    "views_name": VIEWS_SCHEMA_VERSION_NAME,
                    "views": VIEWS_SCHEMA_VERSION,
                },
            )
    except SQLAlchemyError as e:
        raise SchemaError.failed("write db_versions info", sqlite_message(e)) from e


def _init_views(conn: Connection) -> None:
    for name, ddl in VIEWS.items():
        try:
            conn.execute(text(ddl))
        except SQLAlchemyError as e:
            raise SchemaError.failed(f"initialize view {name}", sqlite_message(e)) from e


def _update_views(engine: Engine) -> None:
    """Drop every existing view, bump the recorded version, recreate views."""
    with engine.begin() as conn:
        existing = [
            row[0]
            for row in conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'view'"))
        ]
        for name in existing:
            quoted = name.replace('"', '""')
            try:
                conn.execute(text(f'DROP VIEW IF EXISTS "{quoted}"'))
            except SQLAlchemyError as e:
                raise SchemaError.failed(f"drop view '{name}'", sqlite_message(e)) from e

        try:
            conn.execute(
                text("UPDATE db_versions SET version = :version WHERE name = :name"),
                {"version": VIEWS_SCHEMA_VERSION, "name": VIEWS_SCHEMA_VERSION_NAME},
            )
        except SQLAlchemyError as e:
            raise SchemaError.failed("update views schema version", sqlite_message(e)) from e

        _init_views(conn)

    logger.info("views_migrated", dropped=existing, version=VIEWS_SCHEMA_VERSION)


def get_db_versions(engine: Engine) -> DbVersionInfo:
    """Read the versions recorded in ``db_versions``."""
    try:
        with engine.connect() as conn:
            rows = dict(conn.execute(text("SELECT name, version FROM db_versions")).all())
    except SQLAlchemyError as e:
        raise StoreError.failed("read db_versions", sqlite_message(e)) from e
    return DbVersionInfo(
        pkgdb=int(rows.get(ENGINE_VERSION_NAME, 0)),
        tables=int(rows.get(TABLES_SCHEMA_VERSION_NAME, 0)),
        views=int(rows.get(VIEWS_SCHEMA_VERSION_NAME, 0)),
    )
