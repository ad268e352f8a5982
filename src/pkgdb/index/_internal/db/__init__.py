"""Database layer for the index."""

from pkgdb.index._internal.db.database import Database, sqlite_message
from pkgdb.index._internal.db.schema import VIEWS, get_db_versions, init_schema

__all__ = [
    "Database",
    "sqlite_message",
    "VIEWS",
    "get_db_versions",
    "init_schema",
]
