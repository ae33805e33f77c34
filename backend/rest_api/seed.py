"""
Seed data for development and testing.
Creates one demo store with tables and a small menu with option groups.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import OrderConfirmMode, TableStatus
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from rest_api.models import MenuItem, Store, Table
from rest_api.services.domain import TableLocator

logger = get_logger(__name__)


DEMO_STORE_NAME = "Demo Bistro"
DEMO_TABLE_COUNT = 4

DEMO_MENU = [
    {
        "name": "Bibimbap",
        "base_price": 9000,
        "option_groups": [
            {
                "id": "size",
                "name": "Size",
                "min_select": 1,
                "max_select": 1,
                "values": [
                    {"id": "regular", "label": "Regular", "price_delta": 0},
                    {"id": "large", "label": "Large", "price_delta": 2000},
                ],
            },
            {
                "id": "extras",
                "name": "Extras",
                "min_select": 0,
                "max_select": 2,
                "values": [
                    {"id": "egg", "label": "Fried egg", "price_delta": 1000},
                    {"id": "tofu", "label": "Tofu", "price_delta": 1500},
                ],
            },
        ],
    },
    {"name": "Kimchi Pancake", "base_price": 12000, "option_groups": []},
    {
        "name": "Iced Tea",
        "base_price": 3000,
        "option_groups": [
            {
                "id": "sugar",
                "name": "Sugar",
                "min_select": 0,
                "max_select": 1,
                "values": [
                    {"id": "less", "label": "Less sugar", "price_delta": 0},
                    {"id": "none", "label": "No sugar", "price_delta": 0},
                ],
            },
        ],
    },
    {"name": "Seasonal Sorbet", "base_price": 5000, "option_groups": [], "is_sold_out": True},
]


def seed(db: Session) -> Store:
    """
    Create the demo store. Idempotent: an existing demo store is returned as is.
    """
    store = db.scalar(select(Store).where(Store.name == DEMO_STORE_NAME))
    if store is not None:
        logger.info("Demo store already seeded, skipping", store_id=store.id)
        return store

    store = Store(
        name=DEMO_STORE_NAME,
        currency="KRW",
        settings={
            "tax_rate": 0.1,
            "service_charge_rate": 0.0,
            "tax_included": True,
            "order_confirm_mode": OrderConfirmMode.ANYONE,
            "session_ttl_minutes": 180,
            "allow_additional_orders": True,
        },
    )
    db.add(store)
    db.flush()

    locator = TableLocator(db)
    for number in range(1, DEMO_TABLE_COUNT + 1):
        db.add(
            Table(
                store_id=store.id,
                label=f"T{number}",
                short_code=locator.unique_short_code(),
                status=TableStatus.ACTIVE,
            )
        )
        # Next short code must see this one as taken
        db.flush()

    for entry in DEMO_MENU:
        db.add(MenuItem(store_id=store.id, **entry))

    safe_commit(db)
    logger.info("Demo store seeded", store_id=store.id, tables=DEMO_TABLE_COUNT, menu_items=len(DEMO_MENU))
    return store
