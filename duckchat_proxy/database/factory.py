"""Database factory for the interchangeable token table backends."""

import logging
from typing import Any, Optional

from .base import DatabaseBase
from .postgres import PostgreSQLDatabase
from .sqlite import DEFAULT_SQLITE_PATH, SQLiteDatabase

logger = logging.getLogger("duckchat-proxy")


def create_database(config: Optional[dict[str, Any]] = None) -> DatabaseBase:
    """Create a database instance for ``config``.

    Args:
        config: The ``cache.database`` section. None means the default SQLite file.

    Raises:
        ValueError: If an unsupported database backend is named.
    """
    if config is None:
        config = {
            "backend": "sqlite",
            "connection": {"sqlite": {"path": DEFAULT_SQLITE_PATH}},
        }

    backend = str(config.get("backend", "sqlite")).lower()

    if backend == "sqlite":
        database: DatabaseBase = SQLiteDatabase(config)
    elif backend in ("postgres", "postgresql"):
        database = PostgreSQLDatabase(config)
    else:
        raise ValueError(f"Unsupported database backend: {backend}. Supported backends: sqlite, postgres")

    logger.info(f"Database factory created {database.backend_name} database instance")
    return database
