"""API routes for the proxy."""

from .chat import chat_completions
from .status import status

__all__ = [
    "chat_completions",
    "status",
]
