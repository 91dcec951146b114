"""Database models for the proxy."""

from ..base import Base
from .conversation_token import ConversationToken

__all__ = ["Base", "ConversationToken"]
