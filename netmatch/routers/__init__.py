"""API routers."""

from netmatch.routers.account import router as account_router
from netmatch.routers.auth import router as auth_router

__all__ = ["auth_router", "account_router"]
