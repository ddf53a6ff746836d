"""
Price and size resolution for incoming orders.

- LIMIT orders execute at the caller's price
- MARKET orders execute at the latest quote's close
- Cash transfers always use a unit price of 1.00
"""

import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from brokerage.events.commands import OrderCommand, MarketOrderCommand
from brokerage.events.errors import DataUnavailable, InvalidRequest
from brokerage.events.models import CASH_PRICE, OrderKind, to_money
from brokerage.store.ports import QuoteLookup

logger = logging.getLogger(__name__)


class PriceResolver:
    """Obtains the execution price for an order."""

    def resolve(self, quotes: QuoteLookup, command: OrderCommand) -> Decimal:
        """
        Resolve execution price.

        Args:
            quotes: Quote port of the open transaction
            command: Validated order command

        Returns:
            Price at 2 decimal places

        Raises:
            DataUnavailable: If a MARKET order's instrument has no quote
        """
        if not isinstance(command, MarketOrderCommand):
            return CASH_PRICE

        if command.order_kind == OrderKind.LIMIT:
            return command.price

        quote = quotes.latest_quote(command.instrument_id)
        if quote is None:
            raise DataUnavailable(
                f"No market data available for instrument {command.instrument_id}"
            )
        price = to_money(quote.close)
        logger.debug("Instrument %s priced at %s (quote as of %s)",
                     command.instrument_id, price, quote.as_of)
        return price


class SizeResolver:
    """Converts an amount into a whole share count, or passes size through."""

    def resolve(self, size: Optional[int], amount: Optional[Decimal], price: Decimal) -> int:
        """
        Resolve order size.

        Args:
            size: Explicit share count, if given
            amount: Total amount to spend/transfer, if given
            price: Price resolved for the order

        Returns:
            Positive whole number of units

        Raises:
            InvalidRequest: If amount does not cover a single unit
        """
        if size is not None:
            return size

        units = int((amount / price).to_integral_value(rounding=ROUND_FLOOR))
        if units <= 0:
            raise InvalidRequest("amount insufficient for one unit")
        return units
