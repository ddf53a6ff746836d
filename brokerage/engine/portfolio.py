"""
Portfolio valuation.

Combines the ledger's available cash with the user's open positions
marked at the latest quote:

    average_cost = net_invested / net_quantity
    total_value  = net_quantity * last_price
    return_pct   = (last_price - average_cost) / average_cost * 100

Positions whose instrument has no quote are left out of the response.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from brokerage.engine.ledger import LedgerAccountant
from brokerage.events.errors import NotFound
from brokerage.events.models import PortfolioSnapshot, PositionView, to_money
from brokerage.store.ports import UnitOfWork

logger = logging.getLogger(__name__)


class PortfolioValuator:
    """Read-only valuation of a user's account."""

    def __init__(self, store: UnitOfWork, accountant: Optional[LedgerAccountant] = None):
        self.store = store
        self.accountant = accountant or LedgerAccountant()

    def value(self, user_id: int) -> PortfolioSnapshot:
        """
        Value a user's portfolio.

        Raises:
            NotFound: If the user does not exist
        """
        with self.store.transaction(read_only=True) as tx:
            if tx.get_user(user_id) is None:
                raise NotFound(f"User with id {user_id} not found")

            cash = self.accountant.available_cash(tx, user_id)
            positions: List[PositionView] = []
            invested_value = Decimal("0")

            for agg in self.accountant.positions(tx, user_id):
                instrument = tx.get_instrument(agg.instrument_id)
                quote = tx.latest_quote(agg.instrument_id)
                if instrument is None or quote is None:
                    logger.warning("No quote for instrument %s, dropping position of user %s",
                                   agg.instrument_id, user_id)
                    continue

                last_price = to_money(quote.close)
                average_cost = agg.net_invested / agg.net_quantity
                total_value = agg.net_quantity * last_price
                if average_cost > 0:
                    return_pct = (last_price - average_cost) / average_cost * 100
                else:
                    return_pct = Decimal("0")

                invested_value += total_value
                positions.append(PositionView(
                    ticker=instrument.ticker,
                    name=instrument.name,
                    quantity=agg.net_quantity,
                    last_price=last_price,
                    total_value=to_money(total_value),
                    return_percentage=to_money(return_pct),
                ))

        return PortfolioSnapshot(
            user_id=user_id,
            total_account_value=to_money(cash + invested_value),
            available_cash=to_money(cash),
            positions=positions,
        )
