"""
Persistence ports used by the engine.

Components receive the open transaction and only call the narrow port
they need, so the accounting logic runs against any store (in-memory,
SQL) without changes.
"""

from typing import ContextManager, List, Optional, Protocol, Tuple

from brokerage.events.models import Instrument, Order, OrderStatus, Quote, User


class UserLookup(Protocol):
    def get_user(self, user_id: int, for_update: bool = False) -> Optional[User]:
        ...


class InstrumentLookup(Protocol):
    def get_instrument(self, instrument_id: int) -> Optional[Instrument]:
        ...

    def instruments_in_category(self, category: str) -> List[Instrument]:
        ...

    def search_instruments(
        self, query: Optional[str], limit: int, offset: int
    ) -> Tuple[List[Instrument], int]:
        """Return one page of matches and the total match count."""
        ...


class QuoteLookup(Protocol):
    def latest_quote(self, instrument_id: int) -> Optional[Quote]:
        """Quote with the greatest as_of for the instrument, if any."""
        ...


class OrderStore(Protocol):
    def get_order(self, order_id: int) -> Optional[Order]:
        ...

    def filled_orders(
        self, user_id: int, instrument_id: Optional[int] = None
    ) -> List[Order]:
        """FILLED orders of a user, optionally restricted to one instrument."""
        ...

    def add_order(self, order: Order) -> Order:
        """Persist a new order and return it with its id assigned."""
        ...

    def transition_status(
        self, order_id: int, expected: OrderStatus, new: OrderStatus
    ) -> bool:
        """Set status to new only if it currently equals expected."""
        ...


class LedgerTransaction(UserLookup, InstrumentLookup, QuoteLookup, OrderStore, Protocol):
    """Everything visible inside one unit of work."""


class UnitOfWork(Protocol):
    def transaction(self, read_only: bool = False) -> ContextManager[LedgerTransaction]:
        """
        Open a unit of work.

        Commits when the block exits normally; rolls back and re-raises on
        any exception. Reads inside the block see one consistent snapshot.
        """
        ...
