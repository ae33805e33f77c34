"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, get_settings, DATABASE_URL
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    Roles,
    SessionStatus,
    ParticipantRole,
    CartAction,
    OrderStatus,
    OrderConfirmMode,
    TableStatus,
    Limits,
    ORDER_STATUS_FLOW,
    DEFAULT_STORE_SETTINGS,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "Roles",
    "SessionStatus",
    "ParticipantRole",
    "CartAction",
    "OrderStatus",
    "OrderConfirmMode",
    "TableStatus",
    "Limits",
    "ORDER_STATUS_FLOW",
    "DEFAULT_STORE_SETTINGS",
]
