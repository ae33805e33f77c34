"""
Post-commit broadcasting from the REST API.

Routers schedule these on FastAPI ``BackgroundTasks`` so that publishing
runs after the response is produced and strictly after the commit. A
failed publish is logged and dropped; the write it describes has already
succeeded and clients resynchronize with an authoritative fetch.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from fastapi import BackgroundTasks

from shared.config.logging import get_logger
from shared.infrastructure.events import (
    get_redis_pool,
    publish_cart_updated,
    publish_order_placed,
    publish_order_status_changed,
    publish_participant_joined,
    publish_participant_left,
    publish_session_closed,
)

logger = get_logger(__name__)


async def dispatch_event(publisher: Callable[..., Awaitable[Any]], **kwargs: Any) -> None:
    """Run one domain publisher against the shared pool, swallowing failures."""
    try:
        redis = await get_redis_pool()
        await publisher(redis, **kwargs)
        logger.debug("Event published (bg)", publisher=publisher.__name__)
    except Exception as e:
        logger.error(
            "Failed to publish event (bg)",
            publisher=getattr(publisher, "__name__", str(publisher)),
            error=str(e),
            error_type=type(e).__name__,
        )


def broadcast_cart_updated(
    background_tasks: BackgroundTasks,
    store_id: str,
    session_id: str,
    cart: dict[str, Any],
    actor_participant_id: str | None = None,
) -> None:
    background_tasks.add_task(
        dispatch_event,
        publish_cart_updated,
        store_id=store_id,
        session_id=session_id,
        cart=cart,
        actor_participant_id=actor_participant_id,
    )


def broadcast_order_placed(
    background_tasks: BackgroundTasks,
    order: dict[str, Any],
    actor_participant_id: str | None = None,
) -> None:
    background_tasks.add_task(
        dispatch_event,
        publish_order_placed,
        order=order,
        actor_participant_id=actor_participant_id,
    )


def broadcast_order_status_changed(
    background_tasks: BackgroundTasks,
    order: dict[str, Any],
    actor_user_id: str | None = None,
) -> None:
    background_tasks.add_task(
        dispatch_event,
        publish_order_status_changed,
        store_id=order["store_id"],
        session_id=order["session_id"],
        order_id=order["id"],
        status=order["status"],
        items=order["items"],
        actor_user_id=actor_user_id,
    )


def broadcast_session_closed(
    background_tasks: BackgroundTasks,
    store_id: str,
    session_id: str,
    status: str,
    actor_user_id: str | None = None,
) -> None:
    background_tasks.add_task(
        dispatch_event,
        publish_session_closed,
        store_id=store_id,
        session_id=session_id,
        status=status,
        actor_user_id=actor_user_id,
    )


def broadcast_participant_joined(
    background_tasks: BackgroundTasks,
    store_id: str,
    session_id: str,
    participant: dict[str, Any],
) -> None:
    background_tasks.add_task(
        dispatch_event,
        publish_participant_joined,
        store_id=store_id,
        session_id=session_id,
        participant=participant,
    )


def broadcast_participant_left(
    background_tasks: BackgroundTasks,
    store_id: str,
    session_id: str,
    participant_id: str,
    new_host_participant_id: str | None = None,
) -> None:
    background_tasks.add_task(
        dispatch_event,
        publish_participant_left,
        store_id=store_id,
        session_id=session_id,
        participant_id=participant_id,
        new_host_participant_id=new_host_participant_id,
    )
