"""
Tests for order placement (exactly-once) and the staff status machine.
"""

import pytest

from shared.config.constants import OrderConfirmMode, OrderStatus, Roles
from shared.utils.exceptions import (
    CartVersionConflictError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    SessionNotActiveError,
    ValidationError,
)
from rest_api.services.domain import (
    CartMutation,
    CartService,
    OrderService,
    SessionService,
    can_transition,
)
from tests.conftest import REGULAR


@pytest.fixture
def joined(db_session, seed_table):
    return SessionService(db_session).join("Ana", short_code=seed_table.short_code)


@pytest.fixture
def staff_ctx(seed_store):
    return {"user_id": "staff-1", "store_id": seed_store.id, "roles": [Roles.WAITER]}


@pytest.fixture
def filled(db_session, joined, seed_menu):
    """Cart with 2 pancakes and one regular bibimbap, at version 2."""
    service = CartService(db_session)
    service.apply(
        joined.cart.id, joined.session.id, joined.participant.id, 0,
        CartMutation("ADD", menu_item_id=seed_menu["pancake"].id, quantity=2),
    )
    service.apply(
        joined.cart.id, joined.session.id, joined.participant.id, 1,
        CartMutation("ADD", menu_item_id=seed_menu["bibimbap"].id, selected_options=REGULAR),
    )
    return joined


def place(db_session, joined, version, key, participant=None):
    return OrderService(db_session).place(
        joined.session.id,
        (participant or joined.participant).id,
        version,
        key,
    )


class TestPlacement:
    """Placing the cart as an order."""

    def test_place_snapshots_cart(self, db_session, filled):
        result = place(db_session, filled, 2, "key-1")
        order = result.order

        assert result.replayed is False
        assert order.status == OrderStatus.PLACED
        assert order.round_no == 1
        assert order.cart_version == 2
        assert order.placed_by_participant_id == filled.participant.id
        assert [i.menu_name for i in order.items] == ["Kimchi Pancake", "Bibimbap"]
        assert all(i.status == OrderStatus.PLACED for i in order.items)
        assert order.subtotal == 2 * 12000 + 9000
        assert order.grand_total == 33000
        assert order.tax == 3000
        assert order.tax_rate == 0.1
        assert order.tax_included is True

    def test_placement_leaves_cart_untouched(self, db_session, filled):
        place(db_session, filled, 2, "key-1")

        cart = CartService(db_session).get_cart(filled.cart.id, filled.session.id)
        assert cart.cart.version == 2
        assert len(cart.output.items) == 2

    def test_order_is_immutable_snapshot(self, db_session, filled):
        """Later cart edits do not touch the placed order."""
        order = place(db_session, filled, 2, "key-1").order
        cart = CartService(db_session).get_cart(filled.cart.id, filled.session.id)
        CartService(db_session).apply(
            filled.cart.id, filled.session.id, filled.participant.id, 2,
            CartMutation("UPDATE", item_id=cart.output.items[0].id, quantity=9),
        )

        reloaded = OrderService(db_session).get_order(order.id)
        assert reloaded.items[0].quantity == 2
        assert reloaded.subtotal == 33000

    def test_snapshot_keeps_options(self, db_session, filled):
        order = place(db_session, filled, 2, "key-1").order
        bibimbap = order.items[1]
        assert bibimbap.selected_options[0]["value_id"] == "regular"
        assert bibimbap.item_total == 9000

    def test_next_round_after_cart_change(self, db_session, filled, seed_menu):
        place(db_session, filled, 2, "key-1")
        CartService(db_session).clear(filled.cart.id, filled.session.id, filled.participant.id, 2)
        CartService(db_session).apply(
            filled.cart.id, filled.session.id, filled.participant.id, 3,
            CartMutation("ADD", menu_item_id=seed_menu["pancake"].id),
        )

        second = place(db_session, filled, 4, "key-2").order
        assert second.round_no == 2
        assert second.cart_version == 4
        assert len(OrderService(db_session).list_session_orders(filled.session.id)) == 2


class TestIdempotency:
    """One order per idempotency key; one order per cart version."""

    def test_same_key_replays_same_order(self, db_session, filled):
        first = place(db_session, filled, 2, "key-1")
        again = place(db_session, filled, 2, "key-1")

        assert again.replayed is True
        assert again.order.id == first.order.id
        assert len(OrderService(db_session).list_session_orders(filled.session.id)) == 1

    def test_replay_ignores_version_argument(self, db_session, filled):
        first = place(db_session, filled, 2, "key-1")
        again = place(db_session, filled, 99, "key-1")
        assert again.order.id == first.order.id

    def test_replay_after_session_closed(self, db_session, seed_table, filled):
        first = place(db_session, filled, 2, "key-1")
        SessionService(db_session).close(filled.session.id, store_id=seed_table.store_id)

        again = place(db_session, filled, 2, "key-1")
        assert again.replayed is True
        assert again.order.id == first.order.id

    def test_same_version_new_key_rejected(self, db_session, filled):
        place(db_session, filled, 2, "key-1")
        with pytest.raises(ConflictError) as exc_info:
            place(db_session, filled, 2, "key-2")
        assert exc_info.value.code == "CART_ALREADY_ORDERED"
        assert exc_info.value.status_code == 409

    def test_cancelled_order_frees_cart_version(self, db_session, filled, staff_ctx):
        """After a cancel the same cart contents can be ordered again."""
        first = place(db_session, filled, 2, "key-1").order
        OrderService(db_session).advance_status(first.id, OrderStatus.CANCELLED, staff_ctx)

        second = place(db_session, filled, 2, "key-2")
        assert second.replayed is False
        assert second.order.id != first.id

    def test_blank_key_rejected(self, db_session, filled):
        with pytest.raises(ValidationError) as exc_info:
            place(db_session, filled, 2, "   ")
        assert exc_info.value.code == "IDEMPOTENCY_KEY_REQUIRED"


class TestPlacementGuards:
    def test_empty_cart_rejected(self, db_session, joined, seed_menu):
        with pytest.raises(ValidationError) as exc_info:
            place(db_session, joined, 0, "key-1")
        assert exc_info.value.code == "EMPTY_CART"

    def test_stale_version_conflict(self, db_session, filled):
        with pytest.raises(CartVersionConflictError) as exc_info:
            place(db_session, filled, 1, "key-1")
        assert exc_info.value.current_version == 2
        assert exc_info.value.extra["latest_cart"]["version"] == 2
        assert OrderService(db_session).list_session_orders(filled.session.id) == []

    def test_closed_session_rejected(self, db_session, seed_table, filled):
        SessionService(db_session).close(filled.session.id, store_id=seed_table.store_id)
        with pytest.raises(SessionNotActiveError):
            place(db_session, filled, 2, "key-1")

    def test_host_only_rejects_guest(self, db_session, seed_store, seed_table, filled):
        seed_store.settings = {**seed_store.settings, "order_confirm_mode": OrderConfirmMode.HOST_ONLY}
        db_session.commit()
        guest = SessionService(db_session).join("Ben", short_code=seed_table.short_code)

        with pytest.raises(ForbiddenError) as exc_info:
            place(db_session, filled, 2, "key-1", participant=guest.participant)
        assert exc_info.value.code == "HOST_ONLY"

        assert place(db_session, filled, 2, "key-2").replayed is False

    def test_additional_orders_disabled(self, db_session, seed_store, filled, seed_menu):
        seed_store.settings = {**seed_store.settings, "allow_additional_orders": False}
        db_session.commit()
        place(db_session, filled, 2, "key-1")
        CartService(db_session).apply(
            filled.cart.id, filled.session.id, filled.participant.id, 2,
            CartMutation("ADD", menu_item_id=seed_menu["pancake"].id),
        )

        with pytest.raises(ValidationError) as exc_info:
            place(db_session, filled, 3, "key-2")
        assert exc_info.value.code == "ADDITIONAL_ORDERS_DISABLED"


class TestStatusMachine:
    """Forward-only order status, cancel by floor staff."""

    @pytest.mark.parametrize(
        "current,target,expected",
        [
            (OrderStatus.PLACED, OrderStatus.ACCEPTED, True),
            (OrderStatus.PLACED, OrderStatus.READY, True),
            (OrderStatus.READY, OrderStatus.PREPARING, False),
            (OrderStatus.ACCEPTED, OrderStatus.ACCEPTED, False),
            (OrderStatus.PREPARING, OrderStatus.CANCELLED, True),
            (OrderStatus.SERVED, OrderStatus.CANCELLED, False),
            (OrderStatus.CANCELLED, OrderStatus.ACCEPTED, False),
        ],
    )
    def test_can_transition(self, current, target, expected):
        assert can_transition(current, target) is expected

    def test_advance_moves_items_along(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        updated = OrderService(db_session).advance_status(order.id, OrderStatus.PREPARING, staff_ctx)

        assert updated.status == OrderStatus.PREPARING
        assert updated.status_changed_at is not None
        assert {i.status for i in updated.items} == {OrderStatus.PREPARING}

    def test_backward_move_rejected(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        service = OrderService(db_session)
        service.advance_status(order.id, OrderStatus.READY, staff_ctx)

        with pytest.raises(InvalidTransitionError) as exc_info:
            service.advance_status(order.id, OrderStatus.ACCEPTED, staff_ctx)
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_unknown_status_rejected(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        with pytest.raises(ValidationError) as exc_info:
            OrderService(db_session).advance_status(order.id, "EATEN", staff_ctx)
        assert exc_info.value.code == "STATUS_INVALID"

    def test_kitchen_cannot_cancel(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        kitchen = {**staff_ctx, "roles": [Roles.KITCHEN]}

        with pytest.raises(ForbiddenError) as exc_info:
            OrderService(db_session).advance_status(order.id, OrderStatus.CANCELLED, kitchen)
        assert exc_info.value.code == "INSUFFICIENT_ROLE"

    def test_kitchen_can_advance(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        kitchen = {**staff_ctx, "roles": [Roles.KITCHEN]}
        updated = OrderService(db_session).advance_status(order.id, OrderStatus.ACCEPTED, kitchen)
        assert updated.status == OrderStatus.ACCEPTED

    def test_cancel_cancels_items(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        updated = OrderService(db_session).advance_status(order.id, OrderStatus.CANCELLED, staff_ctx)
        assert {i.status for i in updated.items} == {OrderStatus.CANCELLED}

    def test_order_of_other_store_forbidden(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        other = {**staff_ctx, "store_id": "other-store"}

        with pytest.raises(ForbiddenError) as exc_info:
            OrderService(db_session).advance_status(order.id, OrderStatus.ACCEPTED, other)
        assert exc_info.value.code == "STORE_MISMATCH"

    def test_unknown_order(self, db_session, staff_ctx):
        with pytest.raises(NotFoundError) as exc_info:
            OrderService(db_session).advance_status("missing", OrderStatus.ACCEPTED, staff_ctx)
        assert exc_info.value.code == "ORDER_NOT_FOUND"


class TestItemStatus:
    """Item-level updates roll up into the order status."""

    def test_first_item_progress_accepts_order(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        updated = OrderService(db_session).advance_item_status(
            order.id, order.items[0].id, OrderStatus.SERVED, staff_ctx
        )
        assert updated.items[0].status == OrderStatus.SERVED
        assert updated.status == OrderStatus.ACCEPTED

    def test_all_items_served_serves_order(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        service = OrderService(db_session)
        service.advance_item_status(order.id, order.items[0].id, OrderStatus.SERVED, staff_ctx)
        updated = service.advance_item_status(order.id, order.items[1].id, OrderStatus.SERVED, staff_ctx)
        assert updated.status == OrderStatus.SERVED

    def test_served_and_cancelled_serves_order(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        service = OrderService(db_session)
        service.advance_item_status(order.id, order.items[0].id, OrderStatus.CANCELLED, staff_ctx)
        updated = service.advance_item_status(order.id, order.items[1].id, OrderStatus.SERVED, staff_ctx)
        assert updated.status == OrderStatus.SERVED

    def test_all_items_cancelled_cancels_order(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        service = OrderService(db_session)
        service.advance_item_status(order.id, order.items[0].id, OrderStatus.CANCELLED, staff_ctx)
        updated = service.advance_item_status(order.id, order.items[1].id, OrderStatus.CANCELLED, staff_ctx)
        assert updated.status == OrderStatus.CANCELLED

    def test_unknown_item(self, db_session, filled, staff_ctx):
        order = place(db_session, filled, 2, "key-1").order
        with pytest.raises(NotFoundError) as exc_info:
            OrderService(db_session).advance_item_status(order.id, "missing", OrderStatus.READY, staff_ctx)
        assert exc_info.value.code == "ORDER_ITEM_NOT_FOUND"


class TestStoreOrders:
    def test_list_by_status(self, db_session, filled, staff_ctx, seed_store):
        order = place(db_session, filled, 2, "key-1").order
        service = OrderService(db_session)

        assert [o.id for o in service.list_store_orders(seed_store.id)] == [order.id]
        assert service.list_store_orders(seed_store.id, status=OrderStatus.SERVED) == []

    def test_unknown_status_filter(self, db_session, seed_store):
        with pytest.raises(ValidationError) as exc_info:
            OrderService(db_session).list_store_orders(seed_store.id, status="EATEN")
        assert exc_info.value.code == "STATUS_INVALID"
