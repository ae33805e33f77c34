"""
Property-based tests with Hypothesis.

Pure functions only: pricing, option keys, the order status machine,
short codes, channels and QR tokens.
"""

from hypothesis import given, settings, strategies as st

from shared.config.constants import (
    ORDER_STATUS_FLOW,
    ORDER_TERMINAL_STATUSES,
    SHORT_CODE_CHARSET,
    OrderStatus,
)
from shared.infrastructure.events import channel_session, channel_store, parse_channel
from shared.security.qr_token import normalize_short_code, sign_qr_token, verify_qr_token
from rest_api.services.domain import PricingSettings, can_transition, compute_totals, options_key


lines_strategy = st.lists(
    st.tuples(st.integers(min_value=0, max_value=500_000), st.integers(min_value=1, max_value=99)),
    max_size=20,
)
rate_strategy = st.sampled_from([0.0, 0.05, 0.08, 0.1, 0.125, 0.2])
ids = st.from_regex(r"[A-Za-z0-9\-]{1,36}", fullmatch=True)


class TestTotalsProperties:
    """Property-based tests for cart / order totals."""

    @given(lines=lines_strategy, tax_rate=rate_strategy, service_rate=rate_strategy)
    @settings(max_examples=100)
    def test_included_tax_never_raises_total(self, lines, tax_rate, service_rate):
        """Property: with tax included, grand total is subtotal plus service charge."""
        totals = compute_totals(lines, PricingSettings(tax_rate, service_rate, True))

        assert totals.subtotal == sum(price * qty for price, qty in lines)
        assert totals.grand_total == totals.subtotal + totals.service_charge
        assert 0 <= totals.tax <= totals.subtotal

    @given(lines=lines_strategy, tax_rate=rate_strategy, service_rate=rate_strategy)
    @settings(max_examples=100)
    def test_excluded_tax_adds_up(self, lines, tax_rate, service_rate):
        """Property: with tax excluded, every component is added to the subtotal."""
        totals = compute_totals(lines, PricingSettings(tax_rate, service_rate, False))

        assert totals.grand_total == totals.subtotal + totals.tax + totals.service_charge
        assert totals.tax >= 0
        assert totals.service_charge >= 0

    @given(lines=lines_strategy)
    @settings(max_examples=50)
    def test_line_order_irrelevant(self, lines):
        """Property: totals do not depend on line order."""
        pricing = PricingSettings(0.1, 0.05, False)
        assert compute_totals(lines, pricing) == compute_totals(list(reversed(lines)), pricing)


class TestOptionKeyProperties:
    @given(
        selection=st.lists(
            st.tuples(st.sampled_from(["size", "extras", "spice"]), st.sampled_from(["a", "b", "c"])),
            unique=True,
            max_size=6,
        ),
        data=st.data(),
    )
    @settings(max_examples=50)
    def test_key_ignores_selection_order(self, selection, data):
        """Property: the same option set always merges into the same line."""
        resolved = [{"group_id": g, "value_id": v} for g, v in selection]
        shuffled = data.draw(st.permutations(resolved))
        assert options_key(resolved) == options_key(shuffled)


class TestStatusMachineProperties:
    @given(current=st.sampled_from(OrderStatus.ALL), target=st.sampled_from(OrderStatus.ALL))
    def test_never_moves_backward(self, current, target):
        """Property: an allowed move is a cancel or a step forward in the flow."""
        if not can_transition(current, target):
            return
        assert current not in ORDER_TERMINAL_STATUSES
        if target != OrderStatus.CANCELLED:
            assert ORDER_STATUS_FLOW.index(target) > ORDER_STATUS_FLOW.index(current)

    @given(
        current=st.sampled_from(sorted(ORDER_TERMINAL_STATUSES)),
        target=st.sampled_from(OrderStatus.ALL),
    )
    def test_terminal_is_final(self, current, target):
        assert not can_transition(current, target)


class TestIdentifierProperties:
    @given(code=st.text(alphabet=SHORT_CODE_CHARSET, min_size=6, max_size=6))
    @settings(max_examples=50)
    def test_short_code_normalization(self, code):
        """Property: typed variants of a short code resolve to the same code."""
        typed = f" {code[:3].lower()}-{code[3:]} "
        assert normalize_short_code(typed) == code
        assert normalize_short_code(code) == code

    @given(scope_id=ids)
    @settings(max_examples=50)
    def test_channel_round_trip(self, scope_id):
        assert parse_channel(channel_session(scope_id)) == ("session", scope_id)
        assert parse_channel(channel_store(scope_id)) == ("store", scope_id)

    @given(store_id=ids, table_id=ids, version=st.integers(min_value=1, max_value=10_000))
    @settings(max_examples=50)
    def test_qr_token_round_trip(self, store_id, table_id, version):
        claims = verify_qr_token(sign_qr_token(store_id, table_id, version))
        assert (claims.store_id, claims.table_id, claims.version) == (store_id, table_id, version)
