"""
Concurrency tests against a file-backed SQLite database.

Every worker uses its own Session, like concurrent requests do. SQLite
transactions start with BEGIN IMMEDIATE, so workers serialize on the write
lock; each worker closes its session right after its single operation.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.orm import sessionmaker

from shared.config.constants import ParticipantRole, TableStatus
from shared.infrastructure.db import build_engine
from shared.utils.exceptions import CartVersionConflictError
from rest_api.models import Base, MenuItem, Store, Table
from rest_api.services.domain import (
    CartMutation,
    CartService,
    OrderService,
    SessionService,
)


WORKERS = 6


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'tablecart.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def seeded(session_factory):
    """Store, table and one menu item; returns their ids."""
    db = session_factory()
    try:
        store = Store(name="Race Bistro", currency="KRW", settings={"tax_rate": 0.1})
        db.add(store)
        db.flush()
        table = Table(store_id=store.id, label="T1", short_code="RACE22", status=TableStatus.ACTIVE)
        item = MenuItem(store_id=store.id, name="Dumplings", base_price=7000)
        db.add_all([table, item])
        db.commit()
        return {"store_id": store.id, "short_code": table.short_code, "menu_item_id": item.id}
    finally:
        db.close()


@pytest.fixture
def joined(session_factory, seeded):
    db = session_factory()
    try:
        result = SessionService(db).join("Ana", short_code=seeded["short_code"])
        return {
            "session_id": result.session.id,
            "participant_id": result.participant.id,
            "cart_id": result.cart.id,
        }
    finally:
        db.close()


def run_concurrently(fn, count=WORKERS):
    """Start ``count`` calls of ``fn`` together; return results and raised exceptions."""
    barrier = threading.Barrier(count)

    def worker(index):
        barrier.wait()
        try:
            return fn(index)
        except Exception as e:
            return e

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


class TestConcurrentMutations:
    """Exactly one of N writers at the same version wins."""

    def test_one_winner_per_version(self, session_factory, seeded, joined):
        def mutate(index):
            db = session_factory()
            try:
                result = CartService(db).apply(
                    joined["cart_id"],
                    joined["session_id"],
                    joined["participant_id"],
                    0,
                    CartMutation("ADD", menu_item_id=seeded["menu_item_id"], quantity=index + 1),
                )
                return result.cart.version
            finally:
                db.close()

        outcomes = run_concurrently(mutate)

        winners = [o for o in outcomes if o == 1]
        conflicts = [o for o in outcomes if isinstance(o, CartVersionConflictError)]
        assert len(winners) == 1
        assert len(conflicts) == WORKERS - 1
        assert all(c.current_version == 1 for c in conflicts)

        db = session_factory()
        try:
            cart = CartService(db).get_cart(joined["cart_id"], joined["session_id"])
            assert cart.cart.version == 1
            assert len(cart.output.items) == 1
        finally:
            db.close()

    def test_retries_converge(self, session_factory, seeded, joined):
        """Writers that retry on conflict all land, each on its own version."""
        def mutate_with_retry(index):
            version = 0
            while True:
                db = session_factory()
                try:
                    return CartService(db).apply(
                        joined["cart_id"],
                        joined["session_id"],
                        joined["participant_id"],
                        version,
                        CartMutation("ADD", menu_item_id=seeded["menu_item_id"]),
                    ).cart.version
                except CartVersionConflictError as e:
                    version = e.current_version
                finally:
                    db.close()

        outcomes = run_concurrently(mutate_with_retry)

        assert sorted(outcomes) == list(range(1, WORKERS + 1))
        db = session_factory()
        try:
            cart = CartService(db).get_cart(joined["cart_id"], joined["session_id"])
            assert cart.output.items[0].quantity == WORKERS
        finally:
            db.close()


class TestConcurrentJoin:
    def test_first_joiners_share_one_session(self, session_factory, seeded):
        def join(index):
            db = session_factory()
            try:
                result = SessionService(db).join(f"Diner {index}", short_code=seeded["short_code"])
                return result.session.id, result.participant.role
            finally:
                db.close()

        outcomes = run_concurrently(join)

        assert not [o for o in outcomes if isinstance(o, Exception)]
        assert len({session_id for session_id, _ in outcomes}) == 1
        assert [role for _, role in outcomes].count(ParticipantRole.HOST) == 1

    def test_joiners_of_emptied_session_elect_one_host(self, session_factory, seeded, joined):
        """Everyone left; concurrent joiners to the still-OPEN session get one HOST."""
        db = session_factory()
        try:
            SessionService(db).leave(joined["session_id"], joined["participant_id"])
        finally:
            db.close()

        def join(index):
            db = session_factory()
            try:
                result = SessionService(db).join(f"Diner {index}", short_code=seeded["short_code"])
                return result.session.id, result.participant.role
            finally:
                db.close()

        outcomes = run_concurrently(join)

        assert not [o for o in outcomes if isinstance(o, Exception)]
        assert {session_id for session_id, _ in outcomes} == {joined["session_id"]}
        assert [role for _, role in outcomes].count(ParticipantRole.HOST) == 1


class TestConcurrentPlacement:
    def test_same_key_places_once(self, session_factory, seeded, joined):
        db = session_factory()
        try:
            CartService(db).apply(
                joined["cart_id"], joined["session_id"], joined["participant_id"], 0,
                CartMutation("ADD", menu_item_id=seeded["menu_item_id"]),
            )
        finally:
            db.close()

        def place(index):
            db = session_factory()
            try:
                result = OrderService(db).place(
                    joined["session_id"], joined["participant_id"], 1, "same-key"
                )
                return result.order.id, result.replayed
            finally:
                db.close()

        outcomes = run_concurrently(place)

        assert not [o for o in outcomes if isinstance(o, Exception)]
        assert len({order_id for order_id, _ in outcomes}) == 1
        assert [replayed for _, replayed in outcomes].count(False) == 1
