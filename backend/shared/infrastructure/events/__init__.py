"""
Event System for Real-time Notifications via Redis pub/sub.

Modules:
- circuit_breaker.py: Circuit breaker for publish resilience
- event_types.py: Event type constants
- event_schema.py: Event dataclass with validation
- channels.py: Channel naming (session / store scopes)
- redis_pool.py: Async connection pool management
- health_checks.py: Redis health check
- publisher.py: Core publish_event with retry
- routing.py: publish_to_session / publish_to_store
- domain_publishers.py: High-level domain event publishers
"""

# =============================================================================
# Circuit Breaker
# =============================================================================

from .circuit_breaker import (
    CircuitState,
    EventCircuitBreaker,
    get_event_circuit_breaker,
    calculate_retry_delay_with_jitter,
)

# =============================================================================
# Event Types
# =============================================================================

from .event_types import (
    CART_UPDATED,
    CART_EDITING,
    ORDER_PLACED,
    ORDER_STATUS_CHANGED,
    SESSION_CLOSED,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
    ALL_EVENT_TYPES,
    MAX_EVENT_SIZE,
)

# =============================================================================
# Schema, channels, pool
# =============================================================================

from .event_schema import Event
from .channels import (
    channel_session,
    channel_store,
    parse_channel,
    ALL_CHANNEL_PATTERNS,
)
from .redis_pool import get_redis_pool, close_redis_pool
from .health_checks import check_redis_health

# =============================================================================
# Publishing
# =============================================================================

from .publisher import publish_event
from .routing import publish_to_session, publish_to_store
from .domain_publishers import (
    publish_cart_updated,
    publish_cart_editing,
    publish_order_placed,
    publish_order_status_changed,
    publish_session_closed,
    publish_participant_joined,
    publish_participant_left,
)

__all__ = [
    # Circuit breaker
    "CircuitState",
    "EventCircuitBreaker",
    "get_event_circuit_breaker",
    "calculate_retry_delay_with_jitter",
    # Event types
    "CART_UPDATED",
    "CART_EDITING",
    "ORDER_PLACED",
    "ORDER_STATUS_CHANGED",
    "SESSION_CLOSED",
    "PARTICIPANT_JOINED",
    "PARTICIPANT_LEFT",
    "ALL_EVENT_TYPES",
    "MAX_EVENT_SIZE",
    # Schema / channels / pool
    "Event",
    "channel_session",
    "channel_store",
    "parse_channel",
    "ALL_CHANNEL_PATTERNS",
    "get_redis_pool",
    "close_redis_pool",
    "check_redis_health",
    # Publishing
    "publish_event",
    "publish_to_session",
    "publish_to_store",
    "publish_cart_updated",
    "publish_cart_editing",
    "publish_order_placed",
    "publish_order_status_changed",
    "publish_session_closed",
    "publish_participant_joined",
    "publish_participant_left",
]
