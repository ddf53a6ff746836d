"""
Property-based tests using Hypothesis.

These tests generate random order histories and request sequences to
prove ledger invariants:
- Available cash equals a naive fold over FILLED orders
- Holdings are the BUY - SELL sum and ignore cash transfers
- Sequential execution never overdraws cash or holdings
- Cancelling a NEW order works exactly once
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from brokerage.engine.desk import TradingDesk
from brokerage.engine.ledger import LedgerAccountant
from brokerage.events.errors import InvalidRequest
from brokerage.events.models import (
    Instrument,
    Order,
    OrderKind,
    OrderSide,
    OrderStatus,
    Quote,
    User,
)
from brokerage.store.memory import InMemoryStore

CASH_ID = 1
INSTRUMENT_IDS = [2, 3, 4]
USER_IDS = [1, 2]


def seeded_store():
    store = InMemoryStore()
    for user_id in USER_IDS:
        store.add_user(User(id=user_id))
    store.add_instrument(Instrument(id=CASH_ID, ticker="USD", name="US Dollar", category="CURRENCY"))
    for instrument_id in INSTRUMENT_IDS:
        store.add_instrument(Instrument(
            id=instrument_id, ticker=f"T{instrument_id}", name=f"Ticker {instrument_id}",
            category="ACCIONES",
        ))
        store.add_quote(Quote(
            instrument_id=instrument_id,
            close=Decimal(10 * instrument_id) + Decimal("0.25"),
            as_of=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ))
    return store


# Strategy: generate persisted orders with random status
@st.composite
def order_strategy(draw):
    side = draw(st.sampled_from(list(OrderSide)))
    if side.is_cash_transfer:
        instrument_id = CASH_ID
        price = Decimal("1.00")
        kind = None
    else:
        instrument_id = draw(st.sampled_from(INSTRUMENT_IDS))
        cents = draw(st.integers(min_value=1, max_value=100_000))
        price = Decimal(cents) / 100
        kind = draw(st.sampled_from(list(OrderKind)))

    return Order(
        id=None,
        user_id=draw(st.sampled_from(USER_IDS)),
        instrument_id=instrument_id,
        side=side,
        size=draw(st.integers(min_value=1, max_value=1000)),
        price=price,
        order_kind=kind,
        status=draw(st.sampled_from(list(OrderStatus))),
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def naive_cash(orders, user_id):
    sign = {OrderSide.CASH_IN: 1, OrderSide.SELL: 1, OrderSide.CASH_OUT: -1, OrderSide.BUY: -1}
    return sum(
        (sign[o.side] * o.size * o.price
         for o in orders
         if o.user_id == user_id and o.status == OrderStatus.FILLED),
        Decimal("0"),
    )


def naive_holding(orders, user_id, instrument_id):
    sign = {OrderSide.BUY: 1, OrderSide.SELL: -1}
    return sum(
        sign.get(o.side, 0) * o.size
        for o in orders
        if o.user_id == user_id
        and o.instrument_id == instrument_id
        and o.status == OrderStatus.FILLED
    )


def load(orders):
    store = seeded_store()
    with store.transaction() as tx:
        for order in orders:
            tx.add_order(order)
    return store


@given(st.lists(order_strategy(), max_size=60))
@settings(max_examples=100)
def test_available_cash_matches_fold(orders):
    """Property: available cash is the signed sum over FILLED orders only."""
    store = load(orders)
    accountant = LedgerAccountant()

    with store.transaction(read_only=True) as tx:
        for user_id in USER_IDS:
            assert accountant.available_cash(tx, user_id) == naive_cash(orders, user_id)


@given(st.lists(order_strategy(), max_size=60))
@settings(max_examples=100)
def test_holding_matches_fold(orders):
    """Property: holdings are BUY - SELL over FILLED orders, per instrument."""
    store = load(orders)
    accountant = LedgerAccountant()

    with store.transaction(read_only=True) as tx:
        for user_id in USER_IDS:
            for instrument_id in INSTRUMENT_IDS + [CASH_ID]:
                expected = naive_holding(orders, user_id, instrument_id)
                assert accountant.holding(tx, user_id, instrument_id) == expected


@given(
    st.lists(order_strategy(), max_size=30),
    st.lists(st.integers(min_value=1, max_value=10_000), min_size=1, max_size=10),
)
@settings(max_examples=50)
def test_cash_transfers_never_move_holdings(orders, deposits):
    """Property: adding CASH_IN/CASH_OUT leaves every holding unchanged."""
    transfers = [
        Order(
            id=None, user_id=1, instrument_id=CASH_ID,
            side=OrderSide.CASH_IN if i % 2 == 0 else OrderSide.CASH_OUT,
            size=amount, price=Decimal("1.00"), order_kind=None,
            status=OrderStatus.FILLED, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        for i, amount in enumerate(deposits)
    ]
    accountant = LedgerAccountant()
    before = load(orders)
    after = load(orders + transfers)

    with before.transaction(read_only=True) as tx_before, after.transaction(read_only=True) as tx_after:
        for instrument_id in INSTRUMENT_IDS:
            assert (accountant.holding(tx_before, 1, instrument_id)
                    == accountant.holding(tx_after, 1, instrument_id))


# Strategy: generate raw requests for the desk
request_strategy = st.one_of(
    st.builds(
        lambda side, size: {"user_id": 1, "side": side, "size": size},
        st.sampled_from(["CASH_IN", "CASH_OUT"]),
        st.integers(min_value=1, max_value=5000),
    ),
    st.builds(
        lambda side, instrument_id, size: {
            "user_id": 1, "side": side, "instrument_id": instrument_id,
            "order_kind": "MARKET", "size": size,
        },
        st.sampled_from(["BUY", "SELL"]),
        st.sampled_from(INSTRUMENT_IDS),
        st.integers(min_value=1, max_value=100),
    ),
)


@given(st.lists(request_strategy, min_size=1, max_size=40))
@settings(max_examples=100)
def test_sequential_orders_never_overdraw(requests):
    """Property: after every order, cash and holdings stay non-negative."""
    desk = TradingDesk(seeded_store())

    for request in requests:
        order = desk.submit_order(request)
        assert order.size > 0
        assert order.price > 0
        assert desk.available_cash(1) >= 0
        for instrument_id in INSTRUMENT_IDS:
            assert desk.holding(1, instrument_id) >= 0


@given(st.integers(min_value=1, max_value=50))
@settings(max_examples=25)
def test_cancel_exactly_once(size):
    """Property: a NEW order cancels once; the second attempt fails."""
    desk = TradingDesk(seeded_store())
    desk.submit_order({"user_id": 1, "side": "CASH_IN", "size": 100_000})
    order = desk.submit_order({
        "user_id": 1, "side": "BUY", "instrument_id": 2,
        "order_kind": "LIMIT", "size": size, "price": "20.00",
    })
    assert order.status == OrderStatus.NEW

    assert desk.cancel_order(order.id).status == OrderStatus.CANCELLED
    with pytest.raises(InvalidRequest):
        desk.cancel_order(order.id)
