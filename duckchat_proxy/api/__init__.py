"""API module for the proxy."""

from .errors import proxy_error_handler, register_exception_handlers
from .routes import chat_completions, status

__all__ = [
    "chat_completions",
    "proxy_error_handler",
    "register_exception_handlers",
    "status",
]
