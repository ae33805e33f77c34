"""
Domain-Specific Event Publishing Functions.

High-level functions for publishing cart, order and session events.
Entity payloads are JSON-safe dicts built by the REST API serializers.
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as redis

from .event_types import (
    CART_UPDATED,
    CART_EDITING,
    ORDER_PLACED,
    ORDER_STATUS_CHANGED,
    SESSION_CLOSED,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
)
from .event_schema import Event
from .routing import _publish_with_routing


async def publish_cart_updated(
    redis_client: redis.Redis,
    store_id: str,
    session_id: str,
    cart: dict[str, Any],
    actor_participant_id: str | None = None,
) -> None:
    """Full cart state after a committed mutation, to the session scope."""
    event = Event(
        type=CART_UPDATED,
        store_id=store_id,
        session_id=session_id,
        entity={"cart": cart},
        actor={"participant_id": actor_participant_id},
    )
    await _publish_with_routing(redis_client, event)


async def publish_order_placed(
    redis_client: redis.Redis,
    order: dict[str, Any],
    actor_participant_id: str | None = None,
) -> None:
    """
    Full order, to the session scope and the owning store scope.

    Staff dashboards pick up new orders from the store channel; diners see
    the same payload on their session channel.
    """
    event = Event(
        type=ORDER_PLACED,
        store_id=order["store_id"],
        session_id=order["session_id"],
        entity={"order": order},
        actor={"participant_id": actor_participant_id},
    )
    await _publish_with_routing(redis_client, event, to_session=True, to_store=True)


async def publish_order_status_changed(
    redis_client: redis.Redis,
    store_id: str,
    session_id: str,
    order_id: str,
    status: str,
    items: list[dict[str, Any]],
    actor_user_id: str | None = None,
) -> None:
    """Order id, new status and item snapshots, to both scopes."""
    event = Event(
        type=ORDER_STATUS_CHANGED,
        store_id=store_id,
        session_id=session_id,
        entity={"order_id": order_id, "status": status, "items": items},
        actor={"staff_user_id": actor_user_id},
    )
    await _publish_with_routing(redis_client, event, to_session=True, to_store=True)


async def publish_session_closed(
    redis_client: redis.Redis,
    store_id: str,
    session_id: str,
    status: str,
    actor_user_id: str | None = None,
) -> None:
    """
    Session left OPEN (staff close or lazy expiry).

    Clients stop issuing mutations when they see this.
    """
    event = Event(
        type=SESSION_CLOSED,
        store_id=store_id,
        session_id=session_id,
        entity={"session_id": session_id, "status": status},
        actor={"staff_user_id": actor_user_id},
    )
    await _publish_with_routing(redis_client, event)


async def publish_participant_joined(
    redis_client: redis.Redis,
    store_id: str,
    session_id: str,
    participant: dict[str, Any],
) -> None:
    event = Event(
        type=PARTICIPANT_JOINED,
        store_id=store_id,
        session_id=session_id,
        entity={
            "participant_id": participant["id"],
            "nickname": participant["nickname"],
            "role": participant["role"],
            "avatar_color": participant["avatar_color"],
        },
        actor={"participant_id": participant["id"]},
    )
    await _publish_with_routing(redis_client, event)


async def publish_participant_left(
    redis_client: redis.Redis,
    store_id: str,
    session_id: str,
    participant_id: str,
    new_host_participant_id: str | None = None,
) -> None:
    event = Event(
        type=PARTICIPANT_LEFT,
        store_id=store_id,
        session_id=session_id,
        entity={
            "participant_id": participant_id,
            "new_host_participant_id": new_host_participant_id,
        },
        actor={"participant_id": participant_id},
    )
    await _publish_with_routing(redis_client, event)


async def publish_cart_editing(
    redis_client: redis.Redis,
    store_id: str,
    session_id: str,
    participant_id: str,
    nickname: str | None,
    is_editing: bool,
) -> None:
    """Ephemeral presence signal. Never persisted."""
    event = Event(
        type=CART_EDITING,
        store_id=store_id,
        session_id=session_id,
        entity={
            "participant_id": participant_id,
            "nickname": nickname,
            "is_editing": is_editing,
        },
        actor={"participant_id": participant_id},
    )
    await _publish_with_routing(redis_client, event)
