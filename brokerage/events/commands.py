"""
Typed commands produced by the intake validator.

A raw request is either a cash transfer or a market order; downstream
components only ever see one of these two shapes.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from brokerage.events.models import OrderKind, OrderSide


@dataclass(frozen=True)
class CashTransferCommand:
    """CASH_IN or CASH_OUT. Exactly one of size/amount is set."""
    user_id: int
    side: OrderSide
    size: Optional[int] = None
    amount: Optional[Decimal] = None


@dataclass(frozen=True)
class MarketOrderCommand:
    """BUY or SELL. price is set only for LIMIT orders."""
    user_id: int
    instrument_id: int
    side: OrderSide
    order_kind: OrderKind
    size: Optional[int] = None
    amount: Optional[Decimal] = None
    price: Optional[Decimal] = None


OrderCommand = Union[CashTransferCommand, MarketOrderCommand]
