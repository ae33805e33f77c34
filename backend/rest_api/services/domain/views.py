"""
Output builders: ORM entities -> response schemas.

Event payloads reuse the same outputs via ``model_dump(mode="json")`` so
that what a device receives over the WebSocket has exactly the shape of the
HTTP response.
"""

from __future__ import annotations

from typing import Any

from shared.utils.schemas import (
    CartItemOutput,
    CartOutput,
    OrderItemOutput,
    OrderOutput,
    ParticipantOutput,
    SelectedOptionOutput,
    SessionOutput,
)
from rest_api.models import (
    CartItem,
    Order,
    OrderItem,
    Participant,
    SharedCart,
    TableSession,
)
from .pricing import PricingSettings, compute_totals


def participant_output(participant: Participant) -> ParticipantOutput:
    return ParticipantOutput(
        id=participant.id,
        session_id=participant.session_id,
        nickname=participant.nickname,
        role=participant.role,
        is_active=participant.is_active,
        avatar_color=participant.avatar_color,
        language=participant.language,
        joined_at=participant.joined_at,
    )


def session_output(
    session: TableSession,
    status: str | None = None,
    participants: list[Participant] | None = None,
) -> SessionOutput:
    """
    Args:
        status: Overrides the stored status (an overdue session reads as EXPIRED).
        participants: Defaults to the active participants.
    """
    if participants is None:
        participants = [p for p in session.participants if p.is_active]
    return SessionOutput(
        id=session.id,
        store_id=session.store_id,
        table_id=session.table_id,
        table_label=session.table.label if session.table else None,
        status=status or session.status,
        current_round_no=session.current_round_no,
        participants_count=session.participants_count,
        created_at=session.created_at,
        last_activity_at=session.last_activity_at,
        closed_at=session.closed_at,
        participants=[participant_output(p) for p in participants],
    )


def _options_output(options: list[dict[str, Any]]) -> list[SelectedOptionOutput]:
    return [SelectedOptionOutput(**o) for o in options or []]


def cart_item_output(item: CartItem) -> CartItemOutput:
    return CartItemOutput(
        id=item.id,
        menu_item_id=item.menu_item_id,
        menu_name=item.menu_name,
        participant_id=item.participant_id,
        participant_nickname=item.participant.nickname,
        participant_avatar_color=item.participant.avatar_color,
        quantity=item.quantity,
        unit_price=item.unit_price,
        selected_options=_options_output(item.selected_options),
        line_total=item.line_total,
    )


def cart_output(cart: SharedCart, pricing: PricingSettings) -> CartOutput:
    """Cart with totals recomputed from its current items."""
    totals = compute_totals(((i.unit_price, i.quantity) for i in cart.items), pricing)
    return CartOutput(
        id=cart.id,
        session_id=cart.session_id,
        version=cart.version,
        items=[cart_item_output(i) for i in cart.items],
        updated_at=cart.updated_at,
        **totals.as_dict(),
    )


def order_item_output(item: OrderItem) -> OrderItemOutput:
    return OrderItemOutput(
        id=item.id,
        menu_item_id=item.menu_item_id,
        menu_name=item.menu_name,
        participant_id=item.participant_id,
        quantity=item.quantity,
        unit_price=item.unit_price,
        selected_options=_options_output(item.selected_options),
        item_total=item.item_total,
        status=item.status,
    )


def order_output(order: Order) -> OrderOutput:
    return OrderOutput(
        id=order.id,
        store_id=order.store_id,
        table_id=order.table_id,
        session_id=order.session_id,
        round_no=order.round_no,
        cart_version=order.cart_version,
        status=order.status,
        placed_by_participant_id=order.placed_by_participant_id,
        items=[order_item_output(i) for i in order.items],
        subtotal=order.subtotal,
        tax=order.tax,
        service_charge=order.service_charge,
        grand_total=order.grand_total,
        placed_at=order.placed_at,
    )
