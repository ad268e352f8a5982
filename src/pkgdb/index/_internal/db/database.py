"""Database engine for the package set index.

This module provides:
- Database: SQLite connection manager with WAL mode
- statement(): one autocommitted statement at a time (crawl writes)
- session(): ORM session for reads

Every crawl write commits on its own so that a crash mid-target loses only
the in-flight child, never previously committed children or targets.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, create_engine

from pkgdb.config.models import DatabaseConfig

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = structlog.get_logger()


def sqlite_message(error: SQLAlchemyError) -> str:
    """Return SQLite's own diagnostic text for a SQLAlchemy error."""
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)


class Database:
    """
    SQLite connection manager.

    Configures SQLite for one writer at a time across processes:
    - WAL mode so a supervisor can read while a worker writes
    - Busy timeout so processes queue on the file lock instead of failing
    - Foreign keys enabled for referential integrity

    Usage::

        db = Database(Path("pkgs.sqlite"))

        with db.statement() as conn:
            conn.execute(insert(AttrSet.__table__).values(attr_name="packages", parent=0))

        with db.session() as session:
            packages = session.exec(select(Package)).all()
    """

    def __init__(self, db_path: Path, config: DatabaseConfig | None = None) -> None:
        """Open (or create) the SQLite file at db_path."""
        self.db_path = db_path
        self.config = config or DatabaseConfig()
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        busy_timeout_ms = self.config.busy_timeout_ms
        cache_size_kb = self.config.cache_size_kb

        def _configure_pragmas(dbapi_conn: Any, _connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
            cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA cache_size=-{int(cache_size_kb)}")
            cursor.close()

        event.listen(engine, "connect", _configure_pragmas)
        return engine

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for reads and low-volume writes."""
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def statement(self) -> Generator[Connection, None, None]:
        """
        Connection for a single write, committed on successful exit.

        Rolls back on exception. Never retries: callers translate failures
        into store errors.
        """
        with self.engine.begin() as conn:
            yield conn

    def execute_raw(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        """Execute raw SQL and return all rows."""
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), params or {})
            return result.fetchall() if result.returns_rows else []

    def checkpoint(self, mode: str = "PASSIVE") -> None:
        """Run WAL checkpoint.

        Args:
            mode: PASSIVE (default), FULL, RESTART, or TRUNCATE
        """
        valid_modes = {"PASSIVE", "FULL", "RESTART", "TRUNCATE"}
        if mode.upper() not in valid_modes:
            raise ValueError(f"Invalid checkpoint mode: {mode}. Must be one of {valid_modes}")

        with self.engine.connect() as conn:
            conn.execute(text(f"PRAGMA wal_checkpoint({mode.upper()})"))
            logger.debug("wal_checkpoint_completed", mode=mode)

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()
