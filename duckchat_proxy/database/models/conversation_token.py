"""Conversation token model for the continuity cache.

Maps a conversation fingerprint to the last x-vqd-4 token duckchat issued
for that history.
"""

from sqlalchemy import Column, DateTime, String, Text

from ..base import Base
from .base import TimestampMixin


class ConversationToken(Base, TimestampMixin):
    """A fingerprint -> continuation token mapping with expiry."""

    __tablename__ = "conversation_tokens"
    __comment__ = "Continuation tokens keyed by conversation fingerprint"

    # SHA-256 hex digest of the ordered conversation contents
    fingerprint = Column(
        String(64),
        primary_key=True,
        comment="Conversation fingerprint (sha256 hex)"
    )

    token = Column(
        Text,
        nullable=False,
        comment="Opaque x-vqd-4 continuation token"
    )

    expires_at = Column(
        DateTime,
        nullable=False,
        index=True,
        comment="Expiration time; expired rows read as absent"
    )

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint,
            "token": self.token,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
