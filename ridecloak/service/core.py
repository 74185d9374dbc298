"""
Purpose: The dispatch core's boundary operations.
What it does:
- create_order: density-aware resolution -> cell -> bucket tokens -> stored pending order
- query_candidates: bucket-intersection ranking over a directory snapshot
- list_drivers: informational directory dump (not privacy preserving)
- accept / start / complete: lifecycle events
- relay: verbatim pass-through of peer-to-peer payloads

Every operation validates first and mutates last; a failure leaves no partial state.
"""

import logging
import time
from typing import Optional, Sequence

from ridecloak.config.settings import get_redis
from ridecloak.data import repo, seed
from ridecloak.data.models import Order, OrderStatus
from ridecloak.service import events, geo, matching
from ridecloak.service.buckets import BucketGenerator, FreshnessWindow
from ridecloak.service.errors import InvalidInput
from ridecloak.service.lifecycle import LifecycleController
from ridecloak.service.resolution import select_resolution

logger = logging.getLogger(__name__)


def _require_id(value, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{name} must be a non-empty string")
    return value


def _pair(value, name: str):
    if isinstance(value, dict):
        value = (value.get("lat"), value.get("lon"))
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise InvalidInput(f"{name} must be a (lat, lon) pair")
    return geo.validate_point(value[0], value[1])


class RideService:
    def __init__(
        self,
        directory: repo.DirectoryStore,
        orders: repo.OrderStore,
        generator: BucketGenerator,
        publisher: Optional[events.Publisher] = None,
        eligible: matching.DriverFilter = matching.accept_all,
        coordinates: str = matching.CELL,
        reference_resolution: int = 9,
        density_radius: int = 3,
        order_ttl_seconds: float = 0,
    ):
        if coordinates not in matching.COORDINATE_MODES:
            raise ValueError(f"unknown coordinate mode {coordinates!r}")
        self.directory = directory
        self.orders = orders
        self.generator = generator
        self.publisher = publisher if publisher is not None else events.NullPublisher()
        self.eligible = eligible
        self.coordinates = coordinates
        self.reference_resolution = reference_resolution
        self.density_radius = density_radius
        self.order_ttl_seconds = order_ttl_seconds
        self.lifecycle = LifecycleController(orders, directory, self.publisher)

    # Orders

    def create_order(self, order_id: str, rider_id: str, lat: float, lon: float, destination: Sequence[float]) -> dict:
        _require_id(order_id, "orderId")
        _require_id(rider_id, "riderId")
        origin = geo.validate_point(lat, lon)
        dest = _pair(destination, "destination")

        resolution = select_resolution(
            origin, self.directory.snapshot(), self.reference_resolution, self.density_radius
        )
        cell_id = geo.cell_of(origin[0], origin[1], resolution)
        signatures, tokens = self.generator.derive(cell_id, scope=order_id)

        order = Order(
            order_id=order_id,
            rider_id=rider_id,
            origin=origin,
            destination=dest,
            resolution=resolution,
            cell_id=cell_id,
            signatures=tuple(signatures),
            bucket_tokens=tuple(tokens),
        )
        self.orders.insert(order)
        logger.info("order %s created at resolution %d (cell %s)", order_id, resolution, cell_id)

        self.publisher.publish(events.ORDER_CREATED, {
            "orderId": order_id,
            "cellId": cell_id,
            "bucketTokens": list(tokens),
            "resolution": resolution,
        })
        self.evict_expired()
        return {
            "orderId": order_id,
            "cellId": cell_id,
            "resolution": resolution,
            "bucketTokens": list(tokens),
        }

    def get_order(self, order_id: str) -> dict:
        _require_id(order_id, "orderId")
        return self.orders.get(order_id).view()

    def query_candidates(self, order_id: str) -> dict:
        _require_id(order_id, "orderId")
        order = self.orders.get(order_id)
        drivers = self.directory.snapshot()
        candidates = matching.match(order, drivers, self.eligible, self.coordinates)
        logger.info("order %s matched %d of %d drivers", order_id, len(candidates), len(drivers))
        return {
            "candidates": [c.to_dict() for c in candidates],
            "debug": {"totalDrivers": len(drivers), "matchedCount": len(candidates)},
        }

    def evict_expired(self, now: Optional[float] = None) -> int:
        if self.order_ttl_seconds <= 0:
            return 0
        now = now or time.time()
        cutoff = now - self.order_ttl_seconds
        evicted = self.orders.evict(
            lambda o: o.status == OrderStatus.COMPLETED and (o.updated_at or o.created_at) < cutoff
        )
        if evicted:
            logger.info("evicted %d completed orders", evicted)
        return evicted

    # Drivers

    def list_drivers(self) -> list:
        return [d.to_dict() for d in self.directory.snapshot()]

    # Lifecycle

    def accept(self, order_id: str, driver_id: str) -> dict:
        _require_id(order_id, "orderId")
        _require_id(driver_id, "driverId")
        order = self.lifecycle.accept(order_id, driver_id)
        return {"orderId": order.order_id, "driverId": order.assigned_driver_id, "status": order.status.value}

    def start(self, order_id: str) -> dict:
        _require_id(order_id, "orderId")
        order = self.lifecycle.start(order_id)
        return {"orderId": order.order_id, "status": order.status.value}

    def complete(self, order_id: str) -> dict:
        _require_id(order_id, "orderId")
        order = self.lifecycle.complete(order_id)
        return {"orderId": order.order_id, "status": order.status.value}

    # Peer-to-peer relay

    def relay(self, event: str, payload) -> None:
        if event not in events.RELAYED_EVENTS:
            raise InvalidInput(f"event {event!r} is not relayable")
        logger.debug("relaying %s", event)
        self.publisher.publish(event, payload)


def build_service(settings, publisher: Optional[events.Publisher] = None, order_store=None) -> RideService:
    generator = BucketGenerator(
        settings.shared_secret,
        count=settings.signature_count,
        window=FreshnessWindow(settings.freshness_window_seconds),
        signature_length=settings.signature_length,
        token_length=settings.token_length,
    )
    directory = repo.DirectoryStore(seed.bootstrap_drivers(settings, generator))

    if order_store is None:
        if settings.order_backend == "redis":
            order_store = repo.RedisOrderStore(get_redis())
        elif settings.order_backend == "memory":
            order_store = repo.MemoryOrderStore()
        else:
            raise ValueError(f"unknown order backend {settings.order_backend!r}")

    return RideService(
        directory,
        order_store,
        generator,
        publisher=publisher,
        eligible=matching.available_only if settings.match_available_only else matching.accept_all,
        coordinates=settings.candidate_coordinates,
        reference_resolution=settings.driver_cell_resolution,
        density_radius=settings.density_radius,
        order_ttl_seconds=settings.order_ttl_seconds,
    )
