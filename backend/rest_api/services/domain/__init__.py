"""
Domain Services - application layer of the shared table cart.

Routers stay thin: they authenticate, call one service method, and schedule
broadcasts after the service has committed.

Usage:
    from rest_api.services.domain import CartService, CartMutation

    result = CartService(db).apply(cart_id, session_id, participant_id, 3, CartMutation("ADD", menu_item_id=...))
"""

from .pricing import PricingSettings, Totals, compute_totals
from .settings_provider import StoreSettings, get_store_settings
from .menu_catalog import MenuCatalog, options_key
from .table_locator import TableLocator, issue_qr_token
from .session_service import (
    SessionService,
    JoinResult,
    LeaveResult,
    effective_status,
    hash_fingerprint,
)
from .cart_service import CartService, CartMutation, CartResult
from .order_service import OrderService, PlacementResult, can_transition

__all__ = [
    "PricingSettings",
    "Totals",
    "compute_totals",
    "StoreSettings",
    "get_store_settings",
    "MenuCatalog",
    "options_key",
    "TableLocator",
    "issue_qr_token",
    "SessionService",
    "JoinResult",
    "LeaveResult",
    "effective_status",
    "hash_fingerprint",
    "CartService",
    "CartMutation",
    "CartResult",
    "OrderService",
    "PlacementResult",
    "can_transition",
]
