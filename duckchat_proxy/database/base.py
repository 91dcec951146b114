"""Engine and session handling shared by the token table backends."""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger("duckchat-proxy")

# Declarative base for the token cache tables
Base = declarative_base()


class DatabaseBase(ABC):
    """A lazily created SQLAlchemy engine plus a session factory.

    Subclasses name the backend and build its URL. ``initialize`` is
    idempotent and creates missing tables, so a fresh SQLite file or an empty
    PostgreSQL schema is usable without migrations.
    """

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker[Session]] = None
        self._init_lock = threading.Lock()

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Short backend name used in log lines."""

    @abstractmethod
    def get_connection_string(self) -> str:
        """SQLAlchemy URL for ``create_engine``."""

    def get_pool_options(self) -> dict[str, Any]:
        pool = self.config.get("pool", {})
        return {
            "pool_size": int(pool.get("size", 5)),
            "max_overflow": int(pool.get("max_overflow", 10)),
            "pool_pre_ping": True,
        }

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def initialize(self) -> None:
        if self.is_initialized:
            return

        # Importing the models registers conversation_tokens on Base.metadata
        from . import models  # noqa: F401

        # First use may come from several to_thread workers at once
        with self._init_lock:
            if self.is_initialized:
                return
            logger.info(f"Opening {self.backend_name} token database")
            engine = create_engine(self.get_connection_string(), **self.get_pool_options())
            Base.metadata.create_all(engine)
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
            self._engine = engine
        logger.debug(f"{self.backend_name} tables: {sorted(inspect(engine).get_table_names())}")

    def get_session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError(f"{self.backend_name} database is not initialized")
        return self._session_factory()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """One unit of work: commit on success, roll back on error."""
        sess = self.get_session()
        try:
            yield sess
            sess.commit()
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()

    def health_check(self) -> bool:
        if not self.is_initialized:
            return False
        try:
            with self.session() as sess:
                sess.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"{self.backend_name} health check failed: {e}")
            return False
        return True

    def close(self) -> None:
        if self._engine is None:
            return
        logger.info(f"Closing {self.backend_name} token database")
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
