"""
Staff routers - /api/staff/*
Bearer-token authenticated operations scoped to the staff member's store.
"""

from .sessions import router as sessions_router
from .orders import router as orders_router
from .tables import router as tables_router

__all__ = ["sessions_router", "orders_router", "tables_router"]
