"""
Error taxonomy for order processing.

Insufficient funds or holdings are not errors: such orders are persisted
with status REJECTED and returned normally.
"""


class OrderError(Exception):
    """Base class for failures surfaced to the caller."""


class NotFound(OrderError):
    """A user, instrument or order id does not exist."""


class InvalidRequest(OrderError, ValueError):
    """Malformed or semantically inconsistent request."""


class DataInconsistency(OrderError):
    """Reference data is missing or ambiguous (an operational problem)."""


class DataUnavailable(DataInconsistency):
    """No quote exists to price a market order."""
