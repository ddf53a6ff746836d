"""
Order execution.

Runs one order creation request end to end inside a single unit of work:
validate -> load user/instrument -> resolve price and size -> check the
ledger -> decide status -> persist.

Status decision:
- BUY whose total exceeds available cash      -> REJECTED
- SELL whose size exceeds the holding         -> REJECTED
- CASH_OUT whose size exceeds available cash  -> REJECTED
- otherwise MARKET and cash transfers         -> FILLED
- otherwise LIMIT                             -> NEW

A rejected order is persisted and returned, never raised.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, List, Mapping, Optional

from brokerage.engine.ledger import LedgerAccountant
from brokerage.engine.pricing import PriceResolver, SizeResolver
from brokerage.engine.validator import parse_order_request
from brokerage.events.commands import CashTransferCommand, MarketOrderCommand, OrderCommand
from brokerage.events.errors import DataInconsistency, NotFound
from brokerage.events.models import (
    CASH_PRICE,
    Instrument,
    Order,
    OrderKind,
    OrderSide,
    OrderStatus,
)
from brokerage.store.ports import InstrumentLookup, LedgerTransaction, UnitOfWork

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserLocks:
    """
    Fixed pool of locks striped by user id.

    A user always maps to the same lock. Distinct users may share a stripe.
    """

    def __init__(self, stripes: int = 64):
        if stripes <= 0:
            raise ValueError("stripes must be positive")
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def lock_for(self, user_id: int) -> threading.Lock:
        return self._locks[user_id % len(self._locks)]

    @contextmanager
    def hold(self, user_id: int) -> Iterator[None]:
        with self.lock_for(user_id):
            yield


def find_cash_instrument(instruments: InstrumentLookup, category: str) -> Instrument:
    """
    Resolve the reserved cash instrument.

    Raises:
        DataInconsistency: If the catalog has zero or several cash instruments
    """
    candidates = instruments.instruments_in_category(category)
    if len(candidates) != 1:
        raise DataInconsistency(
            f"Expected exactly one cash instrument ({category}), found {len(candidates)}"
        )
    return candidates[0]


class OrderExecutor:
    """Creates orders and decides their status against the derived ledger."""

    def __init__(
        self,
        store: UnitOfWork,
        *,
        cash_category: str = "CURRENCY",
        serialize_per_user: bool = True,
        prices: Optional[PriceResolver] = None,
        sizes: Optional[SizeResolver] = None,
        accountant: Optional[LedgerAccountant] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Unit of work factory
            cash_category: Category marking the reserved cash instrument
            serialize_per_user: Hold a per-user lock around each creation so
                two orders of one user never decide against the same cash
            prices: Price resolver
            sizes: Size resolver
            accountant: Ledger accountant
            clock: Source of order timestamps
        """
        self.store = store
        self.cash_category = cash_category
        self.serialize_per_user = serialize_per_user
        self.prices = prices or PriceResolver()
        self.sizes = sizes or SizeResolver()
        self.accountant = accountant or LedgerAccountant()
        self.clock = clock
        self._user_locks = UserLocks()

    def submit(self, request: Mapping[str, Any]) -> Order:
        """
        Validate and execute a raw order request.

        Args:
            request: Raw order fields (see parse_order_request)

        Returns:
            The persisted order (FILLED, NEW or REJECTED)

        Raises:
            InvalidRequest: If the request is malformed
            NotFound: If the user or instrument does not exist
            DataInconsistency: If reference data is missing
        """
        return self.execute(parse_order_request(request))

    def execute(self, command: OrderCommand) -> Order:
        """Execute an already validated command in one unit of work."""
        if not self.serialize_per_user:
            return self._execute(command)
        with self._user_locks.hold(command.user_id):
            return self._execute(command)

    def _execute(self, command: OrderCommand) -> Order:
        with self.store.transaction() as tx:
            user = tx.get_user(command.user_id, for_update=self.serialize_per_user)
            if user is None:
                raise NotFound(f"User with id {command.user_id} not found")

            if isinstance(command, CashTransferCommand):
                order = self._cash_transfer(tx, command)
            else:
                order = self._market_order(tx, command)

        if order.status == OrderStatus.REJECTED:
            logger.warning("Order %s rejected: %s %s x %s for user %s",
                           order.id, order.side.value, order.size, order.price, order.user_id)
        else:
            logger.info("Order %s %s: %s %s x %s for user %s",
                        order.id, order.status.value, order.side.value,
                        order.size, order.price, order.user_id)
        return order

    def _market_order(self, tx: LedgerTransaction, command: MarketOrderCommand) -> Order:
        instrument = tx.get_instrument(command.instrument_id)
        if instrument is None:
            raise NotFound(f"Instrument with id {command.instrument_id} not found")

        price = self.prices.resolve(tx, command)
        size = self.sizes.resolve(command.size, command.amount, price)
        total_value = size * price

        status = OrderStatus.FILLED if command.order_kind == OrderKind.MARKET else OrderStatus.NEW
        if command.side == OrderSide.BUY:
            cash = self.accountant.available_cash(tx, command.user_id)
            if total_value > cash:
                status = OrderStatus.REJECTED
        else:
            held = self.accountant.holding(tx, command.user_id, instrument.id)
            if size > held:
                status = OrderStatus.REJECTED

        return tx.add_order(Order(
            id=None,
            user_id=command.user_id,
            instrument_id=instrument.id,
            side=command.side,
            size=size,
            price=price,
            order_kind=command.order_kind,
            status=status,
            created_at=self.clock(),
        ))

    def _cash_transfer(self, tx: LedgerTransaction, command: CashTransferCommand) -> Order:
        cash_instrument = find_cash_instrument(tx, self.cash_category)
        size = self.sizes.resolve(command.size, command.amount, CASH_PRICE)

        status = OrderStatus.FILLED
        if command.side == OrderSide.CASH_OUT:
            if size > self.accountant.available_cash(tx, command.user_id):
                status = OrderStatus.REJECTED

        return tx.add_order(Order(
            id=None,
            user_id=command.user_id,
            instrument_id=cash_instrument.id,
            side=command.side,
            size=size,
            price=CASH_PRICE,
            order_kind=None,
            status=status,
            created_at=self.clock(),
        ))
