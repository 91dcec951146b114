"""Conversation continuity cache.

duckchat issues a fresh x-vqd-4 token with every reply, and OpenAI clients do
not send it back. To resume a conversation anyway, the proxy remembers which
token followed a given history, keyed by a fingerprint of that history's text.

This is a best-effort convenience, not a correctness primitive:
- Writes are last-writer-wins with no conflict detection.
- Two users sending identical histories share (and overwrite) one entry.
- Backend failures read as a miss and writes are dropped.
Clients that need strict continuity must send the x-vqd-4 header themselves.
"""

import logging
from typing import Optional, Sequence

from ..config_loader import DEFAULT_TOKEN_TTL_SECONDS, CacheSettings
from ..core.exceptions import CacheError
from ..database.factory import create_database
from .fingerprint import conversation_fingerprint
from .stores import DatabaseKeyValueStore, KeyValueStore, MemoryKeyValueStore

logger = logging.getLogger("duckchat-proxy")

# Singleton instance
_state_store: Optional["ConversationStateStore"] = None


def get_state_store() -> "ConversationStateStore":
    """Get the global state store instance (in-memory unless configured)."""
    global _state_store
    if _state_store is None:
        _state_store = ConversationStateStore(MemoryKeyValueStore())
    return _state_store


def set_state_store(store: Optional["ConversationStateStore"]) -> None:
    global _state_store
    _state_store = store


def reset_state_store() -> None:
    """Reset the global state store (for testing)."""
    global _state_store
    if _state_store is not None:
        _state_store.close()
    _state_store = None


def build_state_store(settings: CacheSettings) -> "ConversationStateStore":
    """Create a state store for the configured backend."""
    if settings.backend == "database":
        backend: KeyValueStore = DatabaseKeyValueStore(create_database(settings.database))
    else:
        backend = MemoryKeyValueStore(max_entries=settings.max_entries)
    store = ConversationStateStore(
        backend,
        ttl_seconds=settings.ttl_seconds,
        enabled=settings.enabled,
    )
    logger.info(
        "ConversationStateStore: backend=%s enabled=%s ttl=%ss",
        backend.backend_name,
        settings.enabled,
        settings.ttl_seconds,
    )
    return store


class ConversationStateStore:
    """Maps conversation fingerprints to continuation tokens."""

    def __init__(
        self,
        backend: KeyValueStore,
        ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        enabled: bool = True,
    ) -> None:
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled

    async def lookup(self, key: str) -> Optional[str]:
        """Return the token stored under ``key``, or None.

        Backend failures are logged and reported as a miss.
        """
        if not self.enabled or not key:
            return None
        try:
            token = await self.backend.get(key)
        except CacheError as exc:
            logger.warning(f"ConversationStateStore: Lookup failed, treating as miss: {exc}")
            return None
        logger.debug(f"ConversationStateStore: Lookup {key} -> {'hit' if token else 'miss'}")
        return token

    async def store(
        self,
        key: str,
        token: str,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        """Upsert ``key`` -> ``token``. Failures are logged and dropped, never retried."""
        if not self.enabled or not key:
            return
        if not token:
            logger.debug(f"ConversationStateStore: Not storing empty token for {key}")
            return
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            await self.backend.put(key, token, ttl)
        except CacheError as exc:
            logger.warning(f"ConversationStateStore: Store failed for {key}: {exc}")
            return
        logger.debug(f"ConversationStateStore: Stored token under {key}")

    async def lookup_history(self, contents: Sequence[str]) -> Optional[str]:
        """Look up the token that followed ``contents``."""
        key = conversation_fingerprint(contents)
        logger.debug(f"Previous conversation hash: {key}")
        return await self.lookup(key)

    async def remember_exchange(
        self,
        contents: Sequence[str],
        reply: str,
        token: str,
    ) -> str:
        """Store ``token`` under the fingerprint of ``contents`` plus ``reply``.

        Returns:
            The fingerprint used as the key.
        """
        key = conversation_fingerprint([*contents, reply])
        await self.store(key, token)
        logger.debug(f"Saved conversation hash: {key}")
        return key

    def close(self) -> None:
        self.backend.close()
