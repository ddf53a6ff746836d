"""
Shared fixtures: a seeded store (in-memory and SQLite) and a desk over it.

Seed data:
- users 1 and 2
- instrument 1: cash instrument (category CURRENCY)
- instrument 2: AAPL, quotes closing at 150.00 then 152.50 (latest)
- instrument 3: MSFT, no quotes
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from brokerage.engine.desk import TradingDesk
from brokerage.events.models import Instrument, Quote, User
from brokerage.store.memory import InMemoryStore
from brokerage.store.sql import SqlStore

CASH_ID = 1
AAPL_ID = 2
MSFT_ID = 3


def seed(store):
    store.add_user(User(id=1, email="ana@example.com", account_number="10001"))
    store.add_user(User(id=2, email="bo@example.com", account_number="10002"))
    store.add_instrument(Instrument(id=CASH_ID, ticker="USD", name="US Dollar", category="CURRENCY"))
    store.add_instrument(Instrument(id=AAPL_ID, ticker="AAPL", name="Apple Inc.", category="ACCIONES"))
    store.add_instrument(Instrument(id=MSFT_ID, ticker="MSFT", name="Microsoft Corp.", category="ACCIONES"))
    store.add_quote(Quote(
        instrument_id=AAPL_ID,
        close=Decimal("150.00"),
        as_of=datetime(2024, 1, 1, 16, 0, tzinfo=timezone.utc),
    ))
    store.add_quote(Quote(
        instrument_id=AAPL_ID,
        close=Decimal("152.50"),
        as_of=datetime(2024, 1, 2, 16, 0, tzinfo=timezone.utc),
        previous_close=Decimal("150.00"),
    ))
    return store


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        yield seed(InMemoryStore())
        return

    sql_store = SqlStore.from_url(f"sqlite:///{tmp_path / 'brokerage.db'}")
    sql_store.create_schema()
    yield seed(sql_store)
    sql_store.engine.dispose()


@pytest.fixture
def desk(store):
    return TradingDesk(store)


@pytest.fixture
def fund(desk):
    """Deposit cash for a user through a CASH_IN order."""
    def _fund(amount, user_id=1):
        return desk.submit_order({"user_id": user_id, "side": "CASH_IN", "size": amount})
    return _fund
