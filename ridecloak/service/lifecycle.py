"""
Order lifecycle: pending -> accepted -> in_progress -> completed.

Transitions only move one step forward. Each one runs inside the order
store's per-order serialization, so two concurrent accepts for the same
order resolve to one winner and one AlreadyAccepted.

A driver holds at most one open order: accept claims an available driver
(DriverUnavailable otherwise) and completion frees it again.
"""

import logging
from typing import Optional

from ridecloak.data.models import DriverStatus, Order, OrderStatus
from ridecloak.service import events
from ridecloak.service.errors import AlreadyAccepted, DispatchError, InvalidInput, InvalidTransition

logger = logging.getLogger(__name__)

# target state -> required source state
PREVIOUS = {
    OrderStatus.ACCEPTED: OrderStatus.PENDING,
    OrderStatus.IN_PROGRESS: OrderStatus.ACCEPTED,
    OrderStatus.COMPLETED: OrderStatus.IN_PROGRESS,
}

# driver status that follows each order state
DRIVER_STATUS = {
    OrderStatus.ACCEPTED: DriverStatus.MATCHED,
    OrderStatus.IN_PROGRESS: DriverStatus.BUSY,
    OrderStatus.COMPLETED: DriverStatus.AVAILABLE,
}

ANNOUNCEMENTS = {
    OrderStatus.ACCEPTED: events.ORDER_ACCEPTED,
    OrderStatus.IN_PROGRESS: events.ORDER_IN_PROGRESS,
    OrderStatus.COMPLETED: events.ORDER_COMPLETED,
}


def advance(order: Order, target: OrderStatus, driver_id: Optional[str] = None) -> Order:
    """Pure transition check. Returns the advanced order or raises."""
    source = PREVIOUS.get(target)
    if source is None:
        raise InvalidTransition(f"order {order.order_id}: no transition into {target.value}")
    if order.status != source:
        if target == OrderStatus.ACCEPTED:
            raise AlreadyAccepted(
                f"order {order.order_id} already {order.status.value}"
                + (f" by {order.assigned_driver_id}" if order.assigned_driver_id else "")
            )
        raise InvalidTransition(
            f"order {order.order_id} is {order.status.value}, cannot move to {target.value}"
        )
    if target == OrderStatus.ACCEPTED and not driver_id:
        raise InvalidInput("driverId is required to accept an order")
    return order.advance(target, driver_id)


class LifecycleController:
    def __init__(self, orders, directory, publisher=None):
        self.orders = orders
        self.directory = directory
        self.publisher = publisher if publisher is not None else events.NullPublisher()

    def accept(self, order_id: str, driver_id: str) -> Order:
        # reject taken orders before touching the driver
        advance(self.orders.get(order_id), OrderStatus.ACCEPTED, driver_id)
        self.directory.claim(driver_id)
        try:
            order = self._move(order_id, OrderStatus.ACCEPTED, driver_id)
        except DispatchError:
            self.directory.set_status(driver_id, DriverStatus.AVAILABLE)
            raise
        # opaque signal; the key exchange itself happens between the parties
        self.publisher.publish(events.KEY_EXCHANGE_INITIATE, {"orderId": order_id}, recipient=driver_id)
        return order

    def start(self, order_id: str) -> Order:
        return self._move(order_id, OrderStatus.IN_PROGRESS)

    def complete(self, order_id: str) -> Order:
        return self._move(order_id, OrderStatus.COMPLETED)

    def _move(self, order_id: str, target: OrderStatus, driver_id: Optional[str] = None) -> Order:
        try:
            order = self.orders.transition(order_id, lambda current: advance(current, target, driver_id))
        except (AlreadyAccepted, InvalidTransition) as e:
            logger.info("rejected %s for order %s: %s", target.value, order_id, e.detail)
            raise
        logger.info("order %s -> %s (driver %s)", order_id, target.value, order.assigned_driver_id)
        self.directory.set_status(order.assigned_driver_id, DRIVER_STATUS[target])
        # state is already stored before anyone hears about it
        self.publisher.publish(ANNOUNCEMENTS[target], {
            "orderId": order_id,
            "driverId": order.assigned_driver_id,
            "status": order.status.value,
        })
        return order
