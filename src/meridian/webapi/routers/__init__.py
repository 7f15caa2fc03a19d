"""API routers for the Meridian position engine."""

from .account import router as account_router
from .fx import router as fx_router
from .spot import router as spot_router

__all__ = ["account_router", "fx_router", "spot_router"]
