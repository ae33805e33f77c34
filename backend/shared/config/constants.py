"""
Centralized constants for the backend application.
Avoids magic strings for statuses, roles and store defaults.

Usage:
    from shared.config.constants import OrderStatus, ORDER_STATUS_FLOW

    if order.status in ORDER_TERMINAL_STATUSES:
        ...
"""

from typing import Any, Final


# =============================================================================
# Staff Roles
# =============================================================================


class Roles:
    """Staff role constants carried in staff credentials."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    KITCHEN: Final[str] = "KITCHEN"
    WAITER: Final[str] = "WAITER"

    ALL: Final[list[str]] = [ADMIN, MANAGER, KITCHEN, WAITER]


MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER})
FLOOR_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.WAITER})
ALL_STAFF_ROLES: Final[frozenset[str]] = frozenset(Roles.ALL)


# =============================================================================
# Entity Status Constants
# =============================================================================


class TableStatus:
    """Table availability."""

    ACTIVE: Final[str] = "ACTIVE"
    INACTIVE: Final[str] = "INACTIVE"


class SessionStatus:
    """Table session status constants."""

    OPEN: Final[str] = "OPEN"
    CLOSED: Final[str] = "CLOSED"
    EXPIRED: Final[str] = "EXPIRED"

    TERMINAL: Final[list[str]] = [CLOSED, EXPIRED]


class ParticipantRole:
    """Participant role inside a session."""

    HOST: Final[str] = "HOST"
    GUEST: Final[str] = "GUEST"


class CartAction:
    """Mutations accepted by the cart engine."""

    ADD: Final[str] = "ADD"
    UPDATE: Final[str] = "UPDATE"
    REMOVE: Final[str] = "REMOVE"

    ALL: Final[list[str]] = [ADD, UPDATE, REMOVE]


class OrderStatus:
    """Order and order item status constants."""

    PLACED: Final[str] = "PLACED"
    ACCEPTED: Final[str] = "ACCEPTED"
    PREPARING: Final[str] = "PREPARING"
    READY: Final[str] = "READY"
    SERVED: Final[str] = "SERVED"
    CANCELLED: Final[str] = "CANCELLED"

    ALL: Final[list[str]] = [PLACED, ACCEPTED, PREPARING, READY, SERVED, CANCELLED]


class OrderConfirmMode:
    """Who may place an order for the table."""

    ANYONE: Final[str] = "ANYONE"
    HOST_ONLY: Final[str] = "HOST_ONLY"
    CONSENSUS: Final[str] = "CONSENSUS"

    ALL: Final[list[str]] = [ANYONE, HOST_ONLY, CONSENSUS]


# =============================================================================
# Status Transitions
# =============================================================================

# Forward sequence; an order may jump ahead but never move back
ORDER_STATUS_FLOW: Final[list[str]] = [
    OrderStatus.PLACED,
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
]

ORDER_TERMINAL_STATUSES: Final[frozenset[str]] = frozenset(
    {OrderStatus.SERVED, OrderStatus.CANCELLED}
)

# Cancelling requires floor staff; kitchen may only move food forward
ORDER_CANCEL_ROLES: Final[frozenset[str]] = FLOOR_ROLES


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99

    MIN_NICKNAME_LENGTH: Final[int] = 1
    MAX_NICKNAME_LENGTH: Final[int] = 30

    MIN_LANGUAGE_LENGTH: Final[int] = 2
    MAX_LANGUAGE_LENGTH: Final[int] = 10

    MAX_CART_LINES: Final[int] = 100


# =============================================================================
# Join / Presentation
# =============================================================================

# Ambiguous glyphs (0, O, 1, I, L) are excluded
SHORT_CODE_CHARSET: Final[str] = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"

AVATAR_COLORS: Final[list[str]] = [
    "#FF6B35",
    "#2EC4B6",
    "#E71D36",
    "#011627",
    "#FF9F1C",
    "#6A4C93",
    "#1982C4",
    "#8AC926",
]

DEFAULT_LANGUAGE: Final[str] = "en"


# =============================================================================
# Store Settings
# =============================================================================

DEFAULT_STORE_SETTINGS: Final[dict[str, Any]] = {
    "tax_rate": 0.0,
    "service_charge_rate": 0.0,
    "tax_included": True,
    "order_confirm_mode": OrderConfirmMode.ANYONE,
    "session_ttl_minutes": 180,
    "allow_additional_orders": True,
}
