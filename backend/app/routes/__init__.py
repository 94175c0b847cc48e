"""API routes."""

from .analytics import router as analytics_router
from .auth import router as auth_router
from .blockchain import router as blockchain_router
from .payments import router as payments_router
from .products import router as products_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "users_router",
    "products_router",
    "payments_router",
    "blockchain_router",
    "analytics_router",
]
