"""
Core domain models for the brokerage ledger.

This module defines orders, reference data (users, instruments, quotes)
and the read-only portfolio views computed from the order history.
There is no balance model: cash and holdings are always derived.
"""

from enum import Enum
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime
from typing import List, Optional


CENT = Decimal("0.01")
CASH_PRICE = Decimal("1.00")


def to_money(value: Decimal) -> Decimal:
    """Quantize a monetary value to 2 decimal places, rounding half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderSide(Enum):
    """Direction of the order. CASH_IN/CASH_OUT move money, not shares."""
    BUY = "BUY"
    SELL = "SELL"
    CASH_IN = "CASH_IN"
    CASH_OUT = "CASH_OUT"

    @property
    def is_cash_transfer(self) -> bool:
        return self in (OrderSide.CASH_IN, OrderSide.CASH_OUT)


class OrderKind(Enum):
    """Kind of trade order: market (latest quote) or limit (price specified)."""
    MARKET = "MARKET"
    LIMIT = "LIMIT"


class OrderStatus(Enum):
    """Current status of an order in its lifecycle."""
    NEW = "NEW"
    FILLED = "FILLED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


@dataclass
class Order:
    """
    Represents a persisted order.

    Attributes:
        id: Surrogate key, None until the order is stored
        user_id: Owner of the order
        instrument_id: Traded instrument (the cash instrument for transfers)
        side: BUY, SELL, CASH_IN or CASH_OUT
        size: Share count, or cash units for transfers
        price: Execution price at 2 decimal places (1.00 for transfers)
        order_kind: MARKET or LIMIT, None for cash transfers
        status: Current order status
        created_at: When the order was created
    """
    id: Optional[int]
    user_id: int
    instrument_id: int
    side: OrderSide
    size: int
    price: Decimal
    order_kind: Optional[OrderKind]
    status: OrderStatus
    created_at: datetime

    def total_value(self) -> Decimal:
        """Notional of the order: size times price."""
        return self.size * self.price

    def is_complete(self) -> bool:
        """Check if order is in a terminal state."""
        return self.status in (
            OrderStatus.FILLED,
            OrderStatus.CANCELLED,
            OrderStatus.REJECTED
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "instrumentId": self.instrument_id,
            "userId": self.user_id,
            "side": self.side.value,
            "size": self.size,
            "price": self.price,
            "orderKind": self.order_kind.value if self.order_kind else None,
            "status": self.status.value,
            "timestamp": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class User:
    id: int
    email: str = ""
    account_number: str = ""


@dataclass(frozen=True)
class Instrument:
    """
    A tradable instrument.

    Attributes:
        id: Catalog id
        ticker: Symbol (e.g., 'AAPL')
        name: Display name
        category: Instrument category; one category marks the cash instrument
    """
    id: int
    ticker: str
    name: str
    category: str


@dataclass(frozen=True)
class Quote:
    """A market data point. Only close and as_of matter for pricing."""
    instrument_id: int
    close: Decimal
    as_of: datetime
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    previous_close: Optional[Decimal] = None


@dataclass(frozen=True)
class PositionView:
    """One open position in a portfolio valuation."""
    ticker: str
    name: str
    quantity: int
    last_price: Decimal
    total_value: Decimal
    return_percentage: Decimal

    def as_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "name": self.name,
            "quantity": self.quantity,
            "lastPrice": self.last_price,
            "totalValue": self.total_value,
            "returnPercentage": self.return_percentage,
        }


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Portfolio valuation for one user at one point in time."""
    user_id: int
    total_account_value: Decimal
    available_cash: Decimal
    positions: List[PositionView] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "totalAccountValue": self.total_account_value,
            "availableCash": self.available_cash,
            "positions": [p.as_dict() for p in self.positions],
        }


@dataclass(frozen=True)
class InstrumentPage:
    """One page of an instrument catalog search."""
    items: List[Instrument]
    total: int
    limit: int
    offset: int

    @property
    def count(self) -> int:
        return len(self.items)
