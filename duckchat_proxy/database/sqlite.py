"""SQLite backend for the conversation token table."""

import logging
from pathlib import Path
from typing import Any

from sqlalchemy.pool import NullPool, StaticPool

from .base import DatabaseBase

logger = logging.getLogger("duckchat-proxy")

DEFAULT_SQLITE_PATH = "logs/duckchat.db"
MEMORY_PATH = ":memory:"

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class SQLiteDatabase(DatabaseBase):
    """File-backed SQLite by default; ``path: ":memory:"`` for tests."""

    @property
    def backend_name(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> str:
        return self.config.get("connection", {}).get("sqlite", {}).get("path", DEFAULT_SQLITE_PATH)

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY_PATH

    def resolve_path(self) -> Path:
        """Absolute database file path; relative paths hang off the project root."""
        path = Path(self.db_path).expanduser()
        return path if path.is_absolute() else PROJECT_ROOT / path

    def get_connection_string(self) -> str:
        if self.in_memory:
            return f"sqlite:///{MEMORY_PATH}"
        path = self.resolve_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{path}"

    def get_pool_options(self) -> dict[str, Any]:
        if self.in_memory:
            # One shared connection, reachable from asyncio.to_thread workers
            return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        return {"poolclass": NullPool}

    def initialize(self) -> None:
        if self.is_initialized:
            return
        super().initialize()
        logger.info(f"SQLite token database at {self.db_path if self.in_memory else self.resolve_path()}")
