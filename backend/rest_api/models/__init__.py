"""
SQLAlchemy ORM Models Package.

Models are organized into domain-specific modules:
- base: Base class, TimestampMixin, id/time helpers
- store: Store, Table, MenuItem (read-only collaborators of the cart core)
- session: TableSession, Participant
- cart: SharedCart, CartItem
- order: Order, OrderItem, IdempotencyRecord
"""

from .base import Base, TimestampMixin, as_utc, new_id, utcnow
from .store import Store, Table, MenuItem
from .session import TableSession, Participant
from .cart import SharedCart, CartItem
from .order import Order, OrderItem, IdempotencyRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "as_utc",
    "new_id",
    "utcnow",
    "Store",
    "Table",
    "MenuItem",
    "TableSession",
    "Participant",
    "SharedCart",
    "CartItem",
    "Order",
    "OrderItem",
    "IdempotencyRecord",
]
