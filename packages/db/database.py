"""
SQLAlchemy database engine and session management.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from packages.shared.errors import StorageUnavailable
from packages.shared.settings import normalize_database_url

logger = logging.getLogger("emrnotify.db")


class Database:
    """
    Owns one engine for the process. open() once at startup, close() at shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = normalize_database_url(url)
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._sessions: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StorageUnavailable("Database is not open")
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "Database":
        if self._engine is not None:
            return self
        # Connection arguments for SQLite (not needed for Postgres)
        connect_args = {}
        if self.url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}
        self._engine = create_engine(self.url, echo=self.echo, connect_args=connect_args)
        self._sessions = sessionmaker(bind=self._engine, autoflush=False, autocommit=False)
        self.init_db()
        logger.info("Database opened (%s).", self.url.split("://", 1)[0])
        return self

    def init_db(self) -> None:
        """Create all tables (idempotent)."""
        from packages.db.models import Base  # noqa: F811
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Cannot initialise schema: {exc}") from exc

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Database closed.")
        self._engine = None
        self._sessions = None

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Yield a DB session and handle commit/rollback. Driver errors become StorageUnavailable."""
        if self._sessions is None:
            raise StorageUnavailable("Database is not open")
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageUnavailable(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
