"""
Purpose: Core records for the dispatch core.
What it does:
- Driver (id, location, reference cell, bucket tokens, status)
- Order (ids, origin/destination, resolution, cell, signatures, bucket tokens,
  status, assigned driver, timestamps)

Both records are frozen; state changes produce a new record via `replace`,
so a snapshot handed to a caller never changes underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple
import time

LatLon = Tuple[float, float]


class DriverStatus(str, Enum):
    AVAILABLE = "available"
    MATCHED = "matched"
    BUSY = "busy"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Driver:
    id: str
    location: LatLon
    cell: str
    bucket_tokens: Tuple[str, ...]
    status: DriverStatus = DriverStatus.AVAILABLE

    @property
    def lat(self) -> float:
        return self.location[0]

    @property
    def lon(self) -> float:
        return self.location[1]

    def with_status(self, status: DriverStatus) -> Driver:
        return replace(self, status=status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lat": self.lat,
            "lon": self.lon,
            "h3Cell": self.cell,
            "encryptedBuckets": list(self.bucket_tokens),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Driver:
        return cls(
            id=str(data["id"]),
            location=(float(data["lat"]), float(data["lon"])),
            cell=data.get("h3Cell", ""),
            bucket_tokens=tuple(data.get("encryptedBuckets", ())),
            status=DriverStatus(data.get("status", DriverStatus.AVAILABLE.value)),
        )


@dataclass(frozen=True)
class Order:
    order_id: str
    rider_id: str
    origin: LatLon
    destination: LatLon
    resolution: int
    cell_id: str
    signatures: Tuple[str, ...]
    bucket_tokens: Tuple[str, ...]
    status: OrderStatus = OrderStatus.PENDING
    assigned_driver_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: Optional[float] = None

    def advance(self, status: OrderStatus, driver_id: Optional[str] = None) -> Order:
        return replace(
            self,
            status=status,
            assigned_driver_id=driver_id if driver_id is not None else self.assigned_driver_id,
            updated_at=time.time(),
        )

    def view(self) -> dict:
        """Platform-visible summary; never includes rider coordinates."""
        return {
            "orderId": self.order_id,
            "status": self.status.value,
            "driverId": self.assigned_driver_id,
            "resolution": self.resolution,
            "cellId": self.cell_id,
            "bucketTokens": list(self.bucket_tokens),
            "createdAt": self.created_at,
        }

    def to_record(self) -> dict:
        return {
            "order_id": self.order_id,
            "rider_id": self.rider_id,
            "origin": list(self.origin),
            "destination": list(self.destination),
            "resolution": self.resolution,
            "cell_id": self.cell_id,
            "signatures": list(self.signatures),
            "bucket_tokens": list(self.bucket_tokens),
            "status": self.status.value,
            "assigned_driver_id": self.assigned_driver_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, data: dict) -> Order:
        return cls(
            order_id=data["order_id"],
            rider_id=data["rider_id"],
            origin=tuple(data["origin"]),
            destination=tuple(data["destination"]),
            resolution=int(data["resolution"]),
            cell_id=data["cell_id"],
            signatures=tuple(data["signatures"]),
            bucket_tokens=tuple(data["bucket_tokens"]),
            status=OrderStatus(data["status"]),
            assigned_driver_id=data.get("assigned_driver_id"),
            created_at=float(data["created_at"]),
            updated_at=data.get("updated_at"),
        )
