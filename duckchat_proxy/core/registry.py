"""Router registry for breaking circular imports.

This module holds the router instance so that routes can import it
without causing circular imports with the main module.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .router import DuckChatRouter

# Global router instance - set by create_app during initialization
router: Optional["DuckChatRouter"] = None


def set_router(router_instance: Optional["DuckChatRouter"]) -> None:
    """Set the global router instance."""
    global router
    router = router_instance


def get_router() -> "DuckChatRouter":
    """Get the global router instance."""
    if router is None:
        raise RuntimeError("Router not initialized. Did you call set_router?")
    return router
