"""
Order cancellation.

Only NEW orders can be cancelled. The NEW -> CANCELLED transition is
guarded by the current status, so a concurrent change makes the
cancellation fail instead of overwriting it.
"""

import logging
from dataclasses import replace

from brokerage.events.errors import InvalidRequest, NotFound
from brokerage.events.models import Order, OrderStatus
from brokerage.store.ports import UnitOfWork

logger = logging.getLogger(__name__)

NOT_CANCELLABLE = "only NEW orders can be cancelled"


class OrderCancellationHandler:
    """Moves a pending order to CANCELLED."""

    def __init__(self, store: UnitOfWork):
        self.store = store

    def cancel(self, order_id: int) -> Order:
        """
        Cancel order by ID.

        Args:
            order_id: Order ID to cancel

        Returns:
            The order with status CANCELLED

        Raises:
            NotFound: If no order has this id
            InvalidRequest: If the order is not (or no longer) NEW
        """
        try:
            with self.store.transaction() as tx:
                order = tx.get_order(order_id)
                if order is None:
                    raise NotFound(f"Order with id {order_id} not found")
                if order.status != OrderStatus.NEW:
                    raise InvalidRequest(NOT_CANCELLABLE)
                if not tx.transition_status(order_id, OrderStatus.NEW, OrderStatus.CANCELLED):
                    raise InvalidRequest(NOT_CANCELLABLE)
        except InvalidRequest as exc:
            # A store may only detect the lost race when it commits
            if str(exc) != NOT_CANCELLABLE:
                raise InvalidRequest(NOT_CANCELLABLE) from exc
            raise

        logger.info("Order %s cancelled for user %s", order_id, order.user_id)
        return replace(order, status=OrderStatus.CANCELLED)
