"""
Event Routing Helpers.

Convenience functions for publishing to the session and store scopes.
"""

from __future__ import annotations

import redis.asyncio as redis

from .event_schema import Event
from .publisher import publish_event
from .channels import channel_session, channel_store


async def publish_to_session(
    redis_client: redis.Redis,
    session_id: str,
    event: Event,
) -> int:
    """Publish to every device inside a table session."""
    return await publish_event(redis_client, channel_session(session_id), event)


async def publish_to_store(
    redis_client: redis.Redis,
    store_id: str,
    event: Event,
) -> int:
    """Publish to staff devices of a store."""
    return await publish_event(redis_client, channel_store(store_id), event)


async def _publish_with_routing(
    redis_client: redis.Redis,
    event: Event,
    to_session: bool = True,
    to_store: bool = False,
) -> None:
    """
    Publish one event to the scopes it belongs to.

    Session scope uses ``event.session_id``; store scope uses ``event.store_id``.
    """
    if to_session and event.session_id:
        await publish_to_session(redis_client, event.session_id, event)

    if to_store:
        await publish_to_store(redis_client, event.store_id, event)
