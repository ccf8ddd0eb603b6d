from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from mailnick.storage.tables import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        # check_same_thread off: FastAPI runs sync endpoints on a threadpool.
        self.engine: Engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
        )
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _sqlite_pragmas)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_schema(self) -> None:
        # Idempotent: only missing tables are created.
        Base.metadata.create_all(self.engine)
        logger.info("Database schema ready (%s)", self.url)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """One unit of work: commit on success, roll back on any error."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _sqlite_pragmas(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


_lock = Lock()
_database: Optional[Database] = None


def init_database(url: str) -> Database:
    """Create the process-wide database once; later calls return the same handle."""
    global _database
    with _lock:
        if _database is None:
            _database = Database(url)
            _database.create_schema()
        return _database


def get_database() -> Database:
    if _database is None:
        raise RuntimeError("Database is not initialized. Call init_database() at startup.")
    return _database


def reset_database() -> None:
    """Drop the process-wide handle (used by tests and shutdown)."""
    global _database
    with _lock:
        if _database is not None:
            _database.dispose()
        _database = None
