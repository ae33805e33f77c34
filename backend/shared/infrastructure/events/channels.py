"""
Redis Channel Naming.

Two broadcast scopes exist:
- ``session:{session_id}``: every device inside one table session
- ``store:{store_id}``: every staff device of one store
"""

from __future__ import annotations

import re

SESSION_CHANNEL_PREFIX = "session:"
STORE_CHANNEL_PREFIX = "store:"

# Subscriber patterns (psubscribe)
ALL_CHANNEL_PATTERNS = [f"{SESSION_CHANNEL_PREFIX}*", f"{STORE_CHANNEL_PREFIX}*"]

_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-]{1,64}$")


def _validate_id(id_value: str, name: str) -> None:
    """Ids must be non-empty and free of channel metacharacters (``:``, ``*``)."""
    if not isinstance(id_value, str) or not _ID_PATTERN.match(id_value):
        raise ValueError(f"{name} must be a simple identifier, got {id_value!r}")


def channel_session(session_id: str) -> str:
    """Channel for every device inside a table session."""
    _validate_id(session_id, "session_id")
    return f"{SESSION_CHANNEL_PREFIX}{session_id}"


def channel_store(store_id: str) -> str:
    """Channel for staff devices of a store."""
    _validate_id(store_id, "store_id")
    return f"{STORE_CHANNEL_PREFIX}{store_id}"


def parse_channel(channel: str) -> tuple[str, str] | None:
    """
    Split a channel name into (scope, id).

    Returns ("session", id) or ("store", id), or None for anything else.
    """
    for scope, prefix in (("session", SESSION_CHANNEL_PREFIX), ("store", STORE_CHANNEL_PREFIX)):
        if channel.startswith(prefix):
            scope_id = channel[len(prefix):]
            if _ID_PATTERN.match(scope_id):
                return scope, scope_id
            return None
    return None
