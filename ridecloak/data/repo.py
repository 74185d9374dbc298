import json
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

import redis

from ridecloak.data.models import Driver, DriverStatus, Order
from ridecloak.service.errors import DriverUnavailable, DuplicateOrder, InvalidInput, OrderNotFound

logger = logging.getLogger(__name__)

# Drivers

class DirectoryStore:
    """Driver directory. Reads are snapshots; writes serialize on one lock."""

    def __init__(self, drivers: Iterable[Driver] = ()):
        self._lock = threading.RLock()
        self._drivers: Dict[str, Driver] = {}
        for driver in drivers:
            self.register(driver)

    def __len__(self) -> int:
        with self._lock:
            return len(self._drivers)

    def snapshot(self) -> Tuple[Driver, ...]:
        with self._lock:
            return tuple(self._drivers.values())

    def contains(self, driver_id: str) -> bool:
        with self._lock:
            return driver_id in self._drivers

    def get(self, driver_id: str) -> Optional[Driver]:
        with self._lock:
            return self._drivers.get(driver_id)

    def register(self, driver: Driver):
        with self._lock:
            if driver.id in self._drivers:
                raise InvalidInput(f"driver {driver.id} already registered")
            self._drivers[driver.id] = driver

    def remove(self, driver_id: str) -> Optional[Driver]:
        with self._lock:
            return self._drivers.pop(driver_id, None)

    def set_status(self, driver_id: str, status: DriverStatus) -> Optional[Driver]:
        with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                return None
            updated = driver.with_status(status)
            self._drivers[driver_id] = updated
            return updated

    def claim(self, driver_id: str) -> Driver:
        """available -> matched in one step; a driver holds at most one order."""
        with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                raise InvalidInput(f"unknown driver {driver_id!r}")
            if driver.status != DriverStatus.AVAILABLE:
                raise DriverUnavailable(f"driver {driver_id} is {driver.status.value}")
            updated = driver.with_status(DriverStatus.MATCHED)
            self._drivers[driver_id] = updated
            return updated

# Orders

class OrderStore(Protocol):
    def insert(self, order: Order) -> None: ...
    def get(self, order_id: str) -> Order: ...
    def transition(self, order_id: str, fn: Callable[[Order], Order]) -> Order: ...
    def all(self) -> List[Order]: ...
    def evict(self, predicate: Callable[[Order], bool]) -> int: ...


class MemoryOrderStore:
    """Order table: insert-once, then updates serialized per order id."""

    def __init__(self):
        self._table_lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self._locks: Dict[str, threading.Lock] = {}

    def insert(self, order: Order):
        with self._table_lock:
            if order.order_id in self._orders:
                raise DuplicateOrder(f"order {order.order_id} already exists")
            self._orders[order.order_id] = order
            self._locks[order.order_id] = threading.Lock()

    def get(self, order_id: str) -> Order:
        with self._table_lock:
            order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(f"order {order_id} not found")
        return order

    def transition(self, order_id: str, fn: Callable[[Order], Order]) -> Order:
        with self._table_lock:
            lock = self._locks.get(order_id)
        if lock is None:
            raise OrderNotFound(f"order {order_id} not found")
        with lock:
            current = self.get(order_id)
            updated = fn(current)
            with self._table_lock:
                self._orders[order_id] = updated
            return updated

    def all(self) -> List[Order]:
        with self._table_lock:
            return list(self._orders.values())

    def evict(self, predicate: Callable[[Order], bool]) -> int:
        with self._table_lock:
            doomed = [oid for oid, order in self._orders.items() if predicate(order)]
            for oid in doomed:
                del self._orders[oid]
                del self._locks[oid]
        return len(doomed)


class RedisOrderStore:
    """Orders as Redis hashes (`order:{id}`), one JSON-encoded value per field.

    Updates use WATCH/MULTI, so a transition that raced with another one is
    retried against the fresh record instead of overwriting it.
    """

    index_key = "orders"

    def __init__(self, r: redis.Redis, prefix: str = "order:"):
        self.r = r
        self.prefix = prefix

    def _key(self, order_id: str) -> str:
        return f"{self.prefix}{order_id}"

    @staticmethod
    def _encode(order: Order) -> dict:
        return {k: json.dumps(v) for k, v in order.to_record().items()}

    @staticmethod
    def _decode(data: dict) -> Order:
        return Order.from_record({k: json.loads(v) for k, v in data.items()})

    def insert(self, order: Order):
        key = self._key(order.order_id)
        with self.r.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    if pipe.exists(key):
                        raise DuplicateOrder(f"order {order.order_id} already exists")
                    pipe.multi()
                    pipe.hset(key, mapping=self._encode(order))
                    pipe.sadd(self.index_key, order.order_id)
                    pipe.execute()
                    return
                except redis.WatchError:
                    continue

    def get(self, order_id: str) -> Order:
        data = self.r.hgetall(self._key(order_id))
        if not data:
            raise OrderNotFound(f"order {order_id} not found")
        return self._decode(data)

    def transition(self, order_id: str, fn: Callable[[Order], Order]) -> Order:
        key = self._key(order_id)
        with self.r.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    data = pipe.hgetall(key)
                    if not data:
                        raise OrderNotFound(f"order {order_id} not found")
                    updated = fn(self._decode(data))
                    pipe.multi()
                    pipe.hset(key, mapping=self._encode(updated))
                    pipe.execute()
                    return updated
                except redis.WatchError:
                    logger.debug("order %s changed during transition, retrying", order_id)
                    continue

    def all(self) -> List[Order]:
        orders = []
        for order_id in sorted(self.r.smembers(self.index_key)):
            data = self.r.hgetall(self._key(order_id))
            if data:
                orders.append(self._decode(data))
        return orders

    def evict(self, predicate: Callable[[Order], bool]) -> int:
        doomed = [o.order_id for o in self.all() if predicate(o)]
        for order_id in doomed:
            self.r.delete(self._key(order_id))
            self.r.srem(self.index_key, order_id)
        return len(doomed)
