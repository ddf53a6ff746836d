"""
Ledger accounting over a user's order history.

Nothing is stored: cash and holdings are folds over FILLED orders.

    available_cash = sum(size * price for CASH_IN, SELL)
                   - sum(size * price for CASH_OUT, BUY)

    holding(instrument) = sum(size for BUY) - sum(size for SELL)

NEW, REJECTED and CANCELLED orders never contribute.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List

from brokerage.events.models import Order, OrderSide, OrderStatus
from brokerage.store.ports import OrderStore


CASH_CREDITS = (OrderSide.CASH_IN, OrderSide.SELL)
CASH_DEBITS = (OrderSide.CASH_OUT, OrderSide.BUY)


@dataclass
class PositionAggregate:
    """Net BUY - SELL totals for one instrument."""
    instrument_id: int
    net_quantity: int = 0
    net_invested: Decimal = Decimal("0")


def fold_cash(orders: Iterable[Order]) -> Decimal:
    """Signed cash flow of the FILLED orders in the iterable."""
    total = Decimal("0")
    for order in orders:
        if order.status != OrderStatus.FILLED:
            continue
        if order.side in CASH_CREDITS:
            total += order.total_value()
        elif order.side in CASH_DEBITS:
            total -= order.total_value()
    return total


def fold_holding(orders: Iterable[Order], instrument_id: int) -> int:
    """Net share count of one instrument over the FILLED orders in the iterable."""
    total = 0
    for order in orders:
        if order.status != OrderStatus.FILLED or order.instrument_id != instrument_id:
            continue
        if order.side == OrderSide.BUY:
            total += order.size
        elif order.side == OrderSide.SELL:
            total -= order.size
    return total


class LedgerAccountant:
    """Computes cash and holdings from the orders visible to a transaction."""

    def available_cash(self, orders: OrderStore, user_id: int) -> Decimal:
        return fold_cash(orders.filled_orders(user_id))

    def holding(self, orders: OrderStore, user_id: int, instrument_id: int) -> int:
        return fold_holding(orders.filled_orders(user_id, instrument_id), instrument_id)

    def positions(self, orders: OrderStore, user_id: int) -> List[PositionAggregate]:
        """
        Aggregate FILLED BUY/SELL orders per instrument.

        Returns:
            Aggregates with a positive net quantity, ordered by instrument id.
            Fully liquidated positions are dropped.
        """
        groups: Dict[int, PositionAggregate] = {}
        for order in orders.filled_orders(user_id):
            if order.side not in (OrderSide.BUY, OrderSide.SELL):
                continue
            agg = groups.setdefault(order.instrument_id, PositionAggregate(order.instrument_id))
            if order.side == OrderSide.BUY:
                agg.net_quantity += order.size
                agg.net_invested += order.total_value()
            else:
                agg.net_quantity -= order.size
                agg.net_invested -= order.total_value()

        return [
            groups[instrument_id]
            for instrument_id in sorted(groups)
            if groups[instrument_id].net_quantity > 0
        ]
