"""
High-level trading desk interface.

Provides a clean API for order submission, cancellation, portfolio
valuation and instrument search on top of one store.

This is the main entry point for the brokerage engine.
"""

from decimal import Decimal
from typing import Any, Mapping, Optional

from brokerage.config import DeskSettings, configure_logging
from brokerage.engine.cancellation import OrderCancellationHandler
from brokerage.engine.catalog import InstrumentCatalog
from brokerage.engine.executor import OrderExecutor
from brokerage.engine.ledger import LedgerAccountant
from brokerage.engine.portfolio import PortfolioValuator
from brokerage.events.errors import NotFound
from brokerage.events.models import InstrumentPage, Order, PortfolioSnapshot, to_money
from brokerage.store.ports import UnitOfWork
from brokerage.store.sql import SqlStore


class TradingDesk:
    """High-level brokerage interface."""

    def __init__(self, store: UnitOfWork, settings: Optional[DeskSettings] = None):
        """
        Initialize desk over a store.

        Args:
            store: Unit of work factory (InMemoryStore, SqlStore, ...)
            settings: Engine settings; defaults apply when omitted
        """
        self.store = store
        self.settings = settings or DeskSettings()
        self.accountant = LedgerAccountant()
        self.executor = OrderExecutor(
            store,
            cash_category=self.settings.cash_category,
            serialize_per_user=self.settings.serialize_per_user,
            accountant=self.accountant,
        )
        self.cancellations = OrderCancellationHandler(store)
        self.valuator = PortfolioValuator(store, self.accountant)
        self.catalog = InstrumentCatalog(store)

    @classmethod
    def from_settings(cls, settings: DeskSettings) -> "TradingDesk":
        """Build a desk backed by the SQL database named in settings."""
        configure_logging(settings)
        store = SqlStore.from_url(
            settings.database_url, read_isolation_level=settings.read_isolation_level
        )
        store.create_schema()
        return cls(store, settings)

    def submit_order(self, request: Mapping[str, Any]) -> Order:
        """
        Submit an order request.

        Args:
            request: Raw order fields

        Returns:
            The persisted order; check its status for REJECTED

        Raises:
            InvalidRequest: If the request is malformed
            NotFound: If the user or instrument does not exist
        """
        return self.executor.submit(request)

    def cancel_order(self, order_id: int) -> Order:
        """
        Cancel a NEW order.

        Raises:
            NotFound: If the order does not exist
            InvalidRequest: If the order is not NEW
        """
        return self.cancellations.cancel(order_id)

    def get_portfolio(self, user_id: int) -> PortfolioSnapshot:
        return self.valuator.value(user_id)

    def search_instruments(
        self, query: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> InstrumentPage:
        return self.catalog.search(query, limit=limit, offset=offset)

    def available_cash(self, user_id: int) -> Decimal:
        """Cash available to the user, rounded to cents."""
        with self.store.transaction(read_only=True) as tx:
            if tx.get_user(user_id) is None:
                raise NotFound(f"User with id {user_id} not found")
            return to_money(self.accountant.available_cash(tx, user_id))

    def holding(self, user_id: int, instrument_id: int) -> int:
        """Shares of the instrument currently held by the user."""
        with self.store.transaction(read_only=True) as tx:
            if tx.get_user(user_id) is None:
                raise NotFound(f"User with id {user_id} not found")
            return self.accountant.holding(tx, user_id, instrument_id)
