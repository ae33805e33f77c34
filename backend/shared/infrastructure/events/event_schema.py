"""
Event Schema.

Defines the unified Event dataclass for all real-time events.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class Event:
    """
    Unified event schema for all real-time events.

    ``entity`` carries the event payload (cart, order, participant...).
    ``actor`` identifies who triggered the event, e.g.
    {"participant_id": "..."} or {"staff_user_id": "..."}.
    Scope is decided by the channel the event is published on, not by
    fields in the event.
    ``event_id`` is fixed when the event is built, so every publish attempt
    of one event carries the same id and receivers can drop repeats.
    """

    type: str
    store_id: str
    session_id: str | None = None
    entity: dict[str, Any] = field(default_factory=dict)
    actor: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        """Reject malformed events before they reach Redis."""
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string")

        if not self.store_id or not isinstance(self.store_id, str):
            raise ValueError("Event store_id must be a non-empty string")

        if self.session_id is not None and (not isinstance(self.session_id, str) or not self.session_id):
            raise ValueError("Event session_id must be a non-empty string or None")

        if self.entity is not None and not isinstance(self.entity, dict):
            raise ValueError("Event entity must be a dict or None")

        if self.actor is not None and not isinstance(self.actor, dict):
            raise ValueError("Event actor must be a dict or None")

        if not self.event_id or not isinstance(self.event_id, str):
            raise ValueError("Event event_id must be a non-empty string")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["entity"] = data["entity"] or {}
        data["actor"] = data["actor"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Deserialize event from JSON string. Validation runs in __post_init__."""
        data = json.loads(json_str)
        return cls(**data)
