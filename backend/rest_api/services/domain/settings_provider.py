"""
Store Settings Provider.

Read-only view of a store's pricing and ordering policy, with defaults
filled in for keys the store has not configured.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import DEFAULT_STORE_SETTINGS, OrderConfirmMode
from shared.config.logging import get_logger
from shared.utils.exceptions import NotFoundError
from rest_api.models import Store
from .pricing import PricingSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoreSettings:
    tax_rate: float
    service_charge_rate: float
    tax_included: bool
    order_confirm_mode: str
    session_ttl_minutes: int
    allow_additional_orders: bool

    @property
    def pricing(self) -> PricingSettings:
        return PricingSettings(
            tax_rate=self.tax_rate,
            service_charge_rate=self.service_charge_rate,
            tax_included=self.tax_included,
        )

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(minutes=self.session_ttl_minutes)

    @classmethod
    def from_raw(cls, raw: dict[str, Any] | None) -> "StoreSettings":
        """
        Merge stored settings over the defaults.

        Unknown confirm modes fall back to ANYONE and negative rates to 0 so
        that a bad admin edit cannot take ordering down.
        """
        merged = {**DEFAULT_STORE_SETTINGS, **(raw or {})}

        confirm_mode = merged["order_confirm_mode"]
        if confirm_mode not in OrderConfirmMode.ALL:
            logger.warning("Unknown order_confirm_mode, using ANYONE", value=confirm_mode)
            confirm_mode = OrderConfirmMode.ANYONE

        return cls(
            tax_rate=max(float(merged["tax_rate"]), 0.0),
            service_charge_rate=max(float(merged["service_charge_rate"]), 0.0),
            tax_included=bool(merged["tax_included"]),
            order_confirm_mode=confirm_mode,
            session_ttl_minutes=max(int(merged["session_ttl_minutes"]), 1),
            allow_additional_orders=bool(merged["allow_additional_orders"]),
        )


def get_store_settings(db: Session, store_id: str) -> StoreSettings:
    """
    Load settings for a store.

    Raises:
        NotFoundError: If the store does not exist.
    """
    raw = db.scalar(select(Store.settings).where(Store.id == store_id))
    if raw is None:
        exists = db.scalar(select(Store.id).where(Store.id == store_id))
        if not exists:
            raise NotFoundError("Store", store_id)
    return StoreSettings.from_raw(raw)
