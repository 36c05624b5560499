"""API routers package.

This package contains all FastAPI routers for the application.
Each router handles a specific domain of the API.
"""

from .search_admin import router as search_admin_router
from .users import router as users_router

__all__ = [
    "search_admin_router",
    "users_router",
]
