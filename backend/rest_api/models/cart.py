"""
Cart Models: SharedCart and CartItem for the multi-writer table cart.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, new_id, utcnow

if TYPE_CHECKING:
    from .session import TableSession, Participant


class SharedCart(Base):
    """
    The single shared order-in-progress of a session.

    ``version`` starts at 0 and grows by exactly 1 per applied mutation.
    It is only ever advanced by a compare-and-swap UPDATE in CartService.
    Totals are not stored: they are recomputed from the items on every read.
    """

    __tablename__ = "shared_cart"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("table_session.id"), nullable=False, unique=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    session: Mapped["TableSession"] = relationship(back_populates="cart")
    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        order_by="CartItem.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("version >= 0", name="ck_shared_cart_version"),
    )

    def __repr__(self) -> str:
        return f"<SharedCart(id={self.id}, session_id={self.session_id}, version={self.version})>"


class CartItem(TimestampMixin, Base):
    """
    A line in the shared cart.

    ``menu_name`` and ``unit_price`` are snapshots taken when the line was
    added or its options changed. ``options_key`` is a canonical string of
    the selected (group, value) pairs used to merge identical ADDs.
    """

    __tablename__ = "cart_item"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cart_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shared_cart.id"), nullable=False, index=True
    )
    participant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("participant.id"), nullable=False, index=True
    )
    menu_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("menu_item.id"), nullable=False
    )
    menu_name: Mapped[str] = mapped_column(String(200), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_options: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    options_key: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    cart: Mapped["SharedCart"] = relationship(back_populates="items")
    participant: Mapped["Participant"] = relationship()

    __table_args__ = (
        Index("ix_cart_item_merge", "cart_id", "menu_item_id", "participant_id"),
        CheckConstraint("quantity > 0 AND quantity <= 99", name="ck_cart_item_quantity"),
    )

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    def __repr__(self) -> str:
        return f"<CartItem(id={self.id}, cart_id={self.cart_id}, menu_item_id={self.menu_item_id}, qty={self.quantity})>"
