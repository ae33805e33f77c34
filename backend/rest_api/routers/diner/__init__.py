"""
Diner routers - /api/sessions/*, /api/carts/*
Session-token authenticated operations of table participants.
"""

from .sessions import router as sessions_router
from .cart import router as cart_router
from .orders import router as orders_router

__all__ = ["sessions_router", "cart_router", "orders_router"]
