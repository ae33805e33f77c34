"""
Store Models: Store, Table, MenuItem.

These are owned by the admin collaborators; the cart core reads them
through the settings provider, table locator and menu catalog services.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import TableStatus
from .base import Base, TimestampMixin, new_id

if TYPE_CHECKING:
    from .session import TableSession


class Store(TimestampMixin, Base):
    """
    A restaurant.

    ``settings`` holds pricing and ordering policy:
    tax_rate, service_charge_rate, tax_included, order_confirm_mode,
    session_ttl_minutes, allow_additional_orders.
    """

    __tablename__ = "store"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KRW")
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    tables: Mapped[list["Table"]] = relationship(back_populates="store")
    menu_items: Mapped[list["MenuItem"]] = relationship(back_populates="store")


class Table(TimestampMixin, Base):
    """
    A physical table. Reached by a signed QR token (which embeds
    ``qr_token_version``) or by its human-readable ``short_code``.
    Bumping ``qr_token_version`` invalidates every printed QR code.
    """

    __tablename__ = "dining_table"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("store.id"), nullable=False, index=True
    )
    label: Mapped[str] = mapped_column(String(50), nullable=False)
    short_code: Mapped[str] = mapped_column(String(12), nullable=False, unique=True)
    qr_token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TableStatus.ACTIVE)

    store: Mapped["Store"] = relationship(back_populates="tables")
    sessions: Mapped[list["TableSession"]] = relationship(back_populates="table")


class MenuItem(TimestampMixin, Base):
    """
    A menu item as seen by the cart.

    ``option_groups`` is a list of:
        {"id", "name", "min_select", "max_select",
         "values": [{"id", "label", "price_delta"}]}
    Prices are integer minor units.
    """

    __tablename__ = "menu_item"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("store.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    is_sold_out: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    option_groups: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    store: Mapped["Store"] = relationship(back_populates="menu_items")

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_menu_item_base_price"),
    )
