"""
Event Services - post-commit broadcasting of domain events.
"""

from .broadcast import (
    dispatch_event,
    broadcast_cart_updated,
    broadcast_order_placed,
    broadcast_order_status_changed,
    broadcast_session_closed,
    broadcast_participant_joined,
    broadcast_participant_left,
)

__all__ = [
    "dispatch_event",
    "broadcast_cart_updated",
    "broadcast_order_placed",
    "broadcast_order_status_changed",
    "broadcast_session_closed",
    "broadcast_participant_joined",
    "broadcast_participant_left",
]
