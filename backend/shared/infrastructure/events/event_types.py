"""
Event Type Constants.

Defines all event types pushed to devices through Redis pub/sub.
"""

from shared.config.settings import settings

# =============================================================================
# Cart (session scope)
# =============================================================================

CART_UPDATED = "CART_UPDATED"  # full cart state after a committed mutation
CART_EDITING = "CART_EDITING"  # ephemeral presence: participant is editing

# =============================================================================
# Orders (session scope + store scope)
# =============================================================================

ORDER_PLACED = "ORDER_PLACED"  # full order
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"  # order id + status + item snapshots

# =============================================================================
# Session lifecycle (session scope)
# =============================================================================

SESSION_CLOSED = "SESSION_CLOSED"
PARTICIPANT_JOINED = "PARTICIPANT_JOINED"
PARTICIPANT_LEFT = "PARTICIPANT_LEFT"

ALL_EVENT_TYPES = frozenset({
    CART_UPDATED,
    CART_EDITING,
    ORDER_PLACED,
    ORDER_STATUS_CHANGED,
    SESSION_CLOSED,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
})

# =============================================================================
# Size limits
# =============================================================================

MAX_EVENT_SIZE = settings.redis_max_event_size
