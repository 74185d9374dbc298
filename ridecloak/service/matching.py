"""Bucket-intersection matching.

Drivers are ranked by how many bucket tokens they share with the order.
Ties keep directory order. Drivers sharing nothing are dropped.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ridecloak.data.models import Driver, DriverStatus, Order
from ridecloak.service import geo

DriverFilter = Callable[[Driver], bool]

EXACT = "exact"
CELL = "cell"
NONE = "none"
COORDINATE_MODES = {EXACT, CELL, NONE}


def accept_all(driver: Driver) -> bool:
    return True


def available_only(driver: Driver) -> bool:
    return driver.status == DriverStatus.AVAILABLE


def mask_id(driver_id: str, mask: str = "*") -> str:
    return re.sub(r"\d", mask, driver_id)


def intersection_count(order_tokens: Iterable[str], driver_tokens: Iterable[str]) -> int:
    return len(set(order_tokens) & set(driver_tokens))


@dataclass(frozen=True)
class Candidate:
    masked_id: str
    lat: Optional[float]
    lon: Optional[float]
    intersection_count: int

    def to_dict(self) -> Dict:
        return {
            "maskedId": self.masked_id,
            "lat": self.lat,
            "lon": self.lon,
            "intersectionCount": self.intersection_count,
        }


def _exposed_coordinates(driver: Driver, order: Order, mode: str) -> Tuple[Optional[float], Optional[float]]:
    if mode == EXACT:
        return driver.lat, driver.lon
    if mode == CELL:
        # center of the driver's cell at the order's resolution
        return geo.center_of(geo.cell_of(driver.lat, driver.lon, order.resolution))
    return None, None


def rank(order: Order, drivers: Iterable[Driver], eligible: DriverFilter = accept_all) -> List[Tuple[Driver, int]]:
    scored = []
    for driver in drivers:
        if not eligible(driver):
            continue
        count = intersection_count(order.bucket_tokens, driver.bucket_tokens)
        if count > 0:
            scored.append((driver, count))
    # sorted() is stable, so equal counts keep directory order
    return sorted(scored, key=lambda pair: pair[1], reverse=True)


def match(
    order: Order,
    drivers: Iterable[Driver],
    eligible: DriverFilter = accept_all,
    coordinates: str = CELL,
) -> List[Candidate]:
    if coordinates not in COORDINATE_MODES:
        raise ValueError(f"unknown coordinate mode {coordinates!r}")
    candidates = []
    for driver, count in rank(order, drivers, eligible):
        lat, lon = _exposed_coordinates(driver, order, coordinates)
        candidates.append(Candidate(mask_id(driver.id), lat, lon, count))
    return candidates
