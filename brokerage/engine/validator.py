"""
Order intake validation.

Turns a raw, loosely-typed order request into a typed command:
- CASH_IN / CASH_OUT requests become CashTransferCommand
- BUY / SELL requests become MarketOrderCommand

Rules are checked in a fixed order and the first violation wins.
No lookups happen here.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from brokerage.events.commands import CashTransferCommand, MarketOrderCommand, OrderCommand
from brokerage.events.errors import InvalidRequest
from brokerage.events.models import CENT, OrderKind, OrderSide


CASH_FORBIDDEN_FIELDS = ("instrument_id", "order_kind", "price")


def _present(request: Mapping[str, Any], key: str) -> bool:
    return request.get(key) is not None


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidRequest(f"{name} must be a positive integer")
    return value


def _positive_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidRequest(f"{name} must be a positive number")
    try:
        # str() keeps floats like 150.5 from carrying binary noise
        number = Decimal(str(value))
        if not number.is_finite() or number <= 0:
            raise InvalidRequest(f"{name} must be a positive number")
        cents = number.quantize(CENT)
    except InvalidOperation:
        raise InvalidRequest(f"{name} must be a positive number") from None
    if cents != number:
        raise InvalidRequest(f"{name} must have at most 2 decimal places")
    return cents


def _enum(name: str, enum_cls, value: Any):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidRequest(f"{name} must be one of {allowed}") from None


def parse_order_request(request: Mapping[str, Any]) -> OrderCommand:
    """
    Validate a raw order request and classify it.

    Args:
        request: Mapping with user_id, side, size or amount and, for
            BUY/SELL, instrument_id, order_kind and (LIMIT only) price

    Returns:
        CashTransferCommand or MarketOrderCommand

    Raises:
        InvalidRequest: On the first rule the request violates
    """
    if not _present(request, "user_id"):
        raise InvalidRequest("user_id is required")
    user_id = _positive_int("user_id", request["user_id"])
    if not _present(request, "side"):
        raise InvalidRequest("side is required")
    side = _enum("side", OrderSide, request["side"])

    # Rule 1: size XOR amount
    if _present(request, "size") == _present(request, "amount"):
        raise InvalidRequest("exactly one of size or amount required")
    size: Optional[int] = None
    amount: Optional[Decimal] = None
    if _present(request, "size"):
        size = _positive_int("size", request["size"])
    else:
        amount = _positive_decimal("amount", request["amount"])

    # Rule 2: cash transfers carry no instrument, kind or price
    if side.is_cash_transfer:
        for name in CASH_FORBIDDEN_FIELDS:
            if _present(request, name):
                raise InvalidRequest(f"{name} must not be provided for cash transfers")
        return CashTransferCommand(user_id=user_id, side=side, size=size, amount=amount)

    # Rule 3: trades need an instrument and a kind; price iff LIMIT
    if not _present(request, "instrument_id"):
        raise InvalidRequest("instrument_id is required for BUY/SELL orders")
    instrument_id = _positive_int("instrument_id", request["instrument_id"])
    if not _present(request, "order_kind"):
        raise InvalidRequest("order_kind is required for BUY/SELL orders")
    order_kind = _enum("order_kind", OrderKind, request["order_kind"])

    price: Optional[Decimal] = None
    if order_kind == OrderKind.MARKET:
        if _present(request, "price"):
            raise InvalidRequest("price must not be provided for MARKET orders")
    else:
        if not _present(request, "price"):
            raise InvalidRequest("price is required for LIMIT orders")
        price = _positive_decimal("price", request["price"])

    return MarketOrderCommand(
        user_id=user_id,
        instrument_id=instrument_id,
        side=side,
        order_kind=order_kind,
        size=size,
        amount=amount,
        price=price,
    )
