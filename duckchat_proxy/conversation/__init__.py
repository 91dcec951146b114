"""Conversation continuity support.

Key components:
- fingerprint: digests over ordered conversation text
- stores: in-memory and SQLAlchemy key-value backends
- state_store: the best-effort fingerprint -> continuation token cache
"""

from .fingerprint import conversation_fingerprint, model_fingerprint
from .state_store import (
    ConversationStateStore,
    build_state_store,
    get_state_store,
    reset_state_store,
    set_state_store,
)
from .stores import DatabaseKeyValueStore, KeyValueStore, MemoryKeyValueStore

__all__ = [
    "ConversationStateStore",
    "DatabaseKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "build_state_store",
    "conversation_fingerprint",
    "get_state_store",
    "model_fingerprint",
    "reset_state_store",
    "set_state_store",
]
