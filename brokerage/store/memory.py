"""
In-memory store.

Dict-backed implementation of the persistence ports. Each transaction
reads from a snapshot taken when it opens and stages its writes; the
writes are applied atomically under the store lock on commit.

Useful for tests and for running the engine without a database.
"""

import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterator, List, Optional, Tuple

from brokerage.events.errors import InvalidRequest
from brokerage.events.models import Instrument, Order, OrderStatus, Quote, User

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Thread-safe, snapshot-isolated in-memory order ledger."""

    def __init__(self):
        self._lock = threading.Lock()
        self.users: Dict[int, User] = {}
        self.instruments: Dict[int, Instrument] = {}
        self.quotes: Dict[int, List[Quote]] = {}  # instrument_id -> quotes
        self.orders: Dict[int, Order] = {}
        self._order_ids = itertools.count(1)

    # -- Reference data seeding --

    def add_user(self, user: User) -> User:
        with self._lock:
            self.users[user.id] = user
        return user

    def add_instrument(self, instrument: Instrument) -> Instrument:
        with self._lock:
            self.instruments[instrument.id] = instrument
        return instrument

    def add_quote(self, quote: Quote) -> Quote:
        with self._lock:
            self.quotes.setdefault(quote.instrument_id, []).append(quote)
        return quote

    # -- Unit of work --

    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator["MemoryTransaction"]:
        with self._lock:
            tx = MemoryTransaction(
                self,
                users=dict(self.users),
                instruments=dict(self.instruments),
                quotes={k: list(v) for k, v in self.quotes.items()},
                orders=dict(self.orders),
                read_only=read_only,
            )
        try:
            yield tx
        except Exception:
            logger.debug("Rolling back in-memory transaction")
            raise
        if not read_only:
            self._commit(tx)

    def _next_order_id(self) -> int:
        with self._lock:
            return next(self._order_ids)

    def _commit(self, tx: "MemoryTransaction") -> None:
        with self._lock:
            # Guarded transitions must still hold against committed state
            for order_id, (expected, new) in tx.transitions.items():
                current = self.orders.get(order_id)
                if current is None or current.status != expected:
                    raise InvalidRequest(
                        f"only {expected.value} orders can be moved to {new.value}"
                    )
            for order in tx.new_orders:
                self.orders[order.id] = order
            for order_id, (_expected, new) in tx.transitions.items():
                self.orders[order_id] = replace(self.orders[order_id], status=new)


class MemoryTransaction:
    """Snapshot view plus staged writes for one unit of work."""

    def __init__(
        self,
        store: InMemoryStore,
        users: Dict[int, User],
        instruments: Dict[int, Instrument],
        quotes: Dict[int, List[Quote]],
        orders: Dict[int, Order],
        read_only: bool,
    ):
        self._store = store
        self._users = users
        self._instruments = instruments
        self._quotes = quotes
        self._orders = orders
        self._read_only = read_only
        self.new_orders: List[Order] = []
        self.transitions: Dict[int, Tuple[OrderStatus, OrderStatus]] = {}

    def get_user(self, user_id: int, for_update: bool = False) -> Optional[User]:
        return self._users.get(user_id)

    def get_instrument(self, instrument_id: int) -> Optional[Instrument]:
        return self._instruments.get(instrument_id)

    def instruments_in_category(self, category: str) -> List[Instrument]:
        return [i for i in self._instruments.values() if i.category == category]

    def search_instruments(
        self, query: Optional[str], limit: int, offset: int
    ) -> Tuple[List[Instrument], int]:
        matches = sorted(self._instruments.values(), key=lambda i: i.id)
        if query:
            needle = query.lower()
            matches = [
                i for i in matches
                if needle in i.ticker.lower() or needle in i.name.lower()
            ]
        return matches[offset:offset + limit], len(matches)

    def latest_quote(self, instrument_id: int) -> Optional[Quote]:
        quotes = self._quotes.get(instrument_id)
        if not quotes:
            return None
        return max(quotes, key=lambda q: q.as_of)

    def get_order(self, order_id: int) -> Optional[Order]:
        return self._orders.get(order_id)

    def filled_orders(
        self, user_id: int, instrument_id: Optional[int] = None
    ) -> List[Order]:
        return [
            o for o in self._orders.values()
            if o.user_id == user_id
            and o.status == OrderStatus.FILLED
            and (instrument_id is None or o.instrument_id == instrument_id)
        ]

    def add_order(self, order: Order) -> Order:
        self._check_writable()
        stored = replace(order, id=self._store._next_order_id())
        self.new_orders.append(stored)
        self._orders[stored.id] = stored
        return stored

    def transition_status(
        self, order_id: int, expected: OrderStatus, new: OrderStatus
    ) -> bool:
        self._check_writable()
        current = self._orders.get(order_id)
        if current is None or current.status != expected:
            return False
        updated = replace(current, status=new)
        self._orders[order_id] = updated
        staged = [i for i, o in enumerate(self.new_orders) if o.id == order_id]
        if staged:
            self.new_orders[staged[0]] = updated
            return True
        if order_id in self.transitions:
            expected = self.transitions[order_id][0]
        self.transitions[order_id] = (expected, new)
        return True

    def _check_writable(self) -> None:
        if self._read_only:
            raise RuntimeError("Cannot write in a read-only transaction")
