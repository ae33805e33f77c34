"""
Menu Catalog.

Narrow read interface over menu data owned by the admin side: item lookup,
option validation and unit price resolution for cart mutations.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.utils.exceptions import NotFoundError, ValidationError
from rest_api.models import MenuItem

logger = get_logger(__name__)


def options_key(resolved: Iterable[dict[str, Any]]) -> str:
    """Canonical, order-independent key of a selected option set."""
    return "|".join(sorted(f"{o['group_id']}:{o['value_id']}" for o in resolved))


def unit_price(menu_item: MenuItem, resolved: Iterable[dict[str, Any]]) -> int:
    """Base price plus every selected option's price delta."""
    return menu_item.base_price + sum(int(o["price_delta"]) for o in resolved)


class MenuCatalog:
    """Menu lookups scoped to one store."""

    def __init__(self, db: Session):
        self._db = db

    def get_item(self, store_id: str, menu_item_id: str) -> MenuItem:
        """
        Fetch a menu item of the store.

        Items of other stores are reported as not found.
        """
        item = self._db.scalar(
            select(MenuItem).where(
                MenuItem.id == menu_item_id,
                MenuItem.store_id == store_id,
            )
        )
        if not item:
            raise NotFoundError("Menu item", menu_item_id, code="MENU_ITEM_NOT_FOUND")
        return item

    def get_orderable_item(self, store_id: str, menu_item_id: str) -> MenuItem:
        item = self.get_item(store_id, menu_item_id)
        if item.is_sold_out:
            raise ValidationError(
                f"'{item.name}' is sold out",
                code="ITEM_SOLD_OUT",
                menu_item_id=menu_item_id,
            )
        return item

    def resolve_options(
        self,
        menu_item: MenuItem,
        selected: Iterable[dict[str, str]] | None,
    ) -> list[dict[str, Any]]:
        """
        Validate a selection against the item's option groups.

        Args:
            menu_item: The menu item.
            selected: [{"group_id", "value_id"}, ...] from the client.

        Returns:
            Resolved options in catalog order, each with group_name,
            value_label and price_delta taken from the catalog.

        Raises:
            ValidationError: Unknown group/value, duplicate selection, too many
                values in a group, or a required group left empty.
        """
        groups = {g["id"]: g for g in (menu_item.option_groups or [])}
        selected = list(selected or [])

        pairs = [(s["group_id"], s["value_id"]) for s in selected]
        if len(set(pairs)) != len(pairs):
            raise ValidationError("Duplicate option selection", code="OPTION_INVALID")

        resolved_by_pair: dict[tuple[str, str], dict[str, Any]] = {}
        for group_id, value_id in pairs:
            group = groups.get(group_id)
            if group is None:
                raise ValidationError(
                    f"Unknown option group '{group_id}'",
                    code="OPTION_INVALID",
                    menu_item_id=menu_item.id,
                )
            value = next((v for v in group.get("values", []) if v["id"] == value_id), None)
            if value is None:
                raise ValidationError(
                    f"Unknown option '{value_id}' in group '{group['name']}'",
                    code="OPTION_INVALID",
                    menu_item_id=menu_item.id,
                )
            resolved_by_pair[(group_id, value_id)] = {
                "group_id": group_id,
                "value_id": value_id,
                "group_name": group["name"],
                "value_label": value["label"],
                "price_delta": int(value.get("price_delta", 0)),
            }

        counts = Counter(group_id for group_id, _ in pairs)
        for group in groups.values():
            count = counts.get(group["id"], 0)
            max_select = int(group.get("max_select", 1))
            min_select = int(group.get("min_select", 0))
            if count > max_select:
                raise ValidationError(
                    f"At most {max_select} option(s) allowed for '{group['name']}'",
                    code="OPTION_LIMIT_EXCEEDED",
                )
            if count < min_select:
                raise ValidationError(
                    f"'{group['name']}' requires at least {min_select} option(s)",
                    code="OPTION_REQUIRED",
                )

        # Catalog order keeps snapshots stable regardless of client order
        ordered: list[dict[str, Any]] = []
        for group in menu_item.option_groups or []:
            for value in group.get("values", []):
                key = (group["id"], value["id"])
                if key in resolved_by_pair:
                    ordered.append(resolved_by_pair[key])
        return ordered
