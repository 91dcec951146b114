"""PostgreSQL backend for the conversation token table."""

import logging

from sqlalchemy.engine import URL

from .base import DatabaseBase

logger = logging.getLogger("duckchat-proxy")

DEFAULT_POSTGRES_DATABASE = "duckchat_proxy"


class PostgreSQLDatabase(DatabaseBase):
    """PostgreSQL via psycopg2 (install the ``postgres`` extra)."""

    @property
    def backend_name(self) -> str:
        return "postgresql"

    @property
    def pg_config(self) -> dict:
        return self.config.get("connection", {}).get("postgres", {})

    def get_url(self) -> URL:
        pg_config = self.pg_config
        return URL.create(
            "postgresql+psycopg2",
            username=pg_config.get("user", "postgres"),
            password=pg_config.get("password") or None,
            host=pg_config.get("host", "localhost"),
            port=int(pg_config.get("port", 5432)),
            database=pg_config.get("database", DEFAULT_POSTGRES_DATABASE),
        )

    def get_connection_string(self) -> str:
        url = self.get_url()
        logger.debug(f"PostgreSQL connection: {url.render_as_string(hide_password=True)}")
        return url.render_as_string(hide_password=False)

    def initialize(self) -> None:
        if self._engine is not None:
            return

        super().initialize()
        logger.info(
            "PostgreSQL database initialized: %s",
            self.get_url().render_as_string(hide_password=True),
        )
