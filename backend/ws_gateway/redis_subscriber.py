"""
Redis pub/sub subscriber for the WebSocket gateway.
Listens for events on the session / store channels and hands each valid
event, with the channel it arrived on, to the dispatcher.
"""

from __future__ import annotations

import asyncio
import json
from collections import OrderedDict
from typing import Any, Awaitable, Callable

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.infrastructure.events import (
    ALL_CHANNEL_PATTERNS,
    ALL_EVENT_TYPES,
    Event,
    get_redis_pool,
)

logger = get_logger(__name__)

OnMessage = Callable[[str, dict[str, Any]], Awaitable[Any]]


class RecentEvents:
    """
    Bounded memory of (channel, event_id) pairs already dispatched.

    A publisher retry whose first PUBLISH did reach Redis delivers the same
    event twice; the second copy is dropped here. Keyed per channel because
    one event is published to both the session and the store channel.
    """

    def __init__(self, capacity: int | None = None):
        self._capacity = capacity or settings.ws_event_dedup_capacity
        self._seen: OrderedDict[tuple[str, str], None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def first_sighting(self, channel: str, event_id: str) -> bool:
        """Record the pair; False if it was already seen."""
        key = (channel, event_id)
        if key in self._seen:
            self._seen.move_to_end(key)
            return False
        self._seen[key] = None
        if len(self._seen) > self._capacity:
            self._seen.popitem(last=False)
        return True


def decode_event(raw: str | bytes) -> dict[str, Any] | None:
    """
    Parse and validate a raw pub/sub payload.

    Returns the event dict, or None if the payload is not a valid event.
    Unknown event types are passed through with a warning.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        event = Event.from_json(raw)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse Redis message", error=str(e))
        return None
    except (TypeError, ValueError) as e:
        logger.warning("Invalid event schema", error=str(e))
        return None

    if event.type not in ALL_EVENT_TYPES:
        logger.warning("Unknown event type received", event_type=event.type)
    return event.to_dict()


async def handle_message(
    msg: dict[str, Any] | None,
    on_message: OnMessage,
    recent: RecentEvents | None = None,
) -> bool:
    """
    Dispatch one pub/sub message. Returns True if it reached ``on_message``.
    With ``recent``, an event already dispatched on the same channel is dropped.

    Errors in the callback are logged so one bad event cannot stop the loop.
    """
    if msg is None or msg.get("type") not in ("message", "pmessage"):
        return False

    channel = msg.get("channel")
    if isinstance(channel, bytes):
        channel = channel.decode("utf-8")

    event = decode_event(msg["data"])
    if event is None:
        return False

    if recent is not None and not recent.first_sighting(channel, event["event_id"]):
        logger.debug("Duplicate event dropped", channel=channel, event_type=event.get("type"))
        return False

    try:
        await on_message(channel, event)
    except Exception as e:
        logger.error(
            "Error handling Redis message",
            channel=channel,
            event_type=event.get("type"),
            error=str(e),
            exc_info=True,
        )
        return False
    return True


async def run_subscriber(
    on_message: OnMessage,
    patterns: list[str] | None = None,
    poll_timeout: float = 1.0,
    on_subscribed: Callable[[], None] | None = None,
    recent: RecentEvents | None = None,
) -> None:
    """
    Subscribe to channel patterns and dispatch messages until cancelled.

    Args:
        on_message: Async callback receiving (channel, event dict).
        patterns: Channel patterns; defaults to every session and store channel.
        poll_timeout: Seconds to wait per poll before checking again.
        on_subscribed: Called once the pattern subscription is live.
        recent: Duplicate filter; pass one instance across restarts so a
            retry that lands after a reconnect is still recognised.
    """
    patterns = patterns or ALL_CHANNEL_PATTERNS
    recent = recent if recent is not None else RecentEvents()
    redis_pool = await get_redis_pool()
    pubsub = redis_pool.pubsub()
    await pubsub.psubscribe(*patterns)

    logger.info("Redis subscriber started", patterns=patterns)
    if on_subscribed is not None:
        on_subscribed()

    try:
        while True:
            msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=poll_timeout)
            await handle_message(msg, on_message, recent)
    except asyncio.CancelledError:
        logger.info("Redis subscriber cancelled")
        raise
    finally:
        await pubsub.punsubscribe(*patterns)
        await pubsub.aclose()
