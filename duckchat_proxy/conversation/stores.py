"""Key-value backends for the conversation continuity cache.

Both backends expose the same two coroutines, ``get`` and ``put``. Values are
opaque token strings keyed by conversation fingerprints; every entry carries
its own expiry.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import CacheError
from ..database.base import DatabaseBase
from ..database.models import ConversationToken
from ..database.models.base import utcnow

logger = logging.getLogger("duckchat-proxy")


class KeyValueStore(ABC):
    """get/put-with-TTL storage collaborator."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the live value for ``key``, or None if absent or expired.

        Raises:
            CacheError: If the backend is unavailable.
        """

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Upsert ``key`` with an expiry ``ttl_seconds`` from now.

        Raises:
            CacheError: If the backend is unavailable.
        """

    def close(self) -> None:
        """Release backend resources."""


class MemoryKeyValueStore(KeyValueStore):
    """In-process LRU store.

    Expiry is checked lazily on read; the least recently used entry is evicted
    once ``max_entries`` is exceeded.
    """

    def __init__(
        self,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self.max_entries = max_entries
        self._clock = clock

    @property
    def backend_name(self) -> str:
        return "memory"

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            logger.debug(f"MemoryKeyValueStore: Entry {key} expired")
            return None
        self._entries.move_to_end(key)
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)
        self._entries.move_to_end(key)
        if len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.debug(f"MemoryKeyValueStore: Evicted {evicted_key}")

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class DatabaseKeyValueStore(KeyValueStore):
    """SQLAlchemy-backed store over the ``conversation_tokens`` table.

    SQLAlchemy sessions are synchronous, so each call runs in a worker thread.
    """

    def __init__(
        self,
        database: DatabaseBase,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._database = database
        self._clock = clock

    @property
    def backend_name(self) -> str:
        return f"database:{self._database.backend_name}"

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_sync, key)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        await asyncio.to_thread(self._put_sync, key, value, ttl_seconds)

    def _get_sync(self, key: str) -> Optional[str]:
        try:
            self._database.initialize()
            with self._database.session() as sess:
                row = sess.get(ConversationToken, key)
                if row is None:
                    return None
                if row.expires_at <= self._clock():
                    return None
                return row.token
        except SQLAlchemyError as exc:
            raise CacheError(f"conversation token lookup failed: {exc}") from exc

    def _put_sync(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds)
        try:
            self._database.initialize()
            with self._database.session() as sess:
                row = sess.get(ConversationToken, key)
                if row is None:
                    sess.add(
                        ConversationToken(
                            fingerprint=key,
                            token=value,
                            created_at=now,
                            expires_at=expires_at,
                        )
                    )
                else:
                    row.token = value
                    row.created_at = now
                    row.expires_at = expires_at
        except SQLAlchemyError as exc:
            raise CacheError(f"conversation token write failed: {exc}") from exc

    def purge_expired(self) -> int:
        """Delete expired rows and return how many were removed."""
        try:
            self._database.initialize()
            with self._database.session() as sess:
                result = sess.execute(
                    delete(ConversationToken).where(
                        ConversationToken.expires_at <= self._clock()
                    )
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as exc:
            raise CacheError(f"conversation token purge failed: {exc}") from exc
        logger.info(f"DatabaseKeyValueStore: Purged {removed} expired tokens")
        return removed

    def close(self) -> None:
        self._database.close()
