"""
Purpose: Driver directory bootstrap.
What it does:
- Loads the persisted directory (JSON list of drivers) when the file exists.
- Otherwise synthesizes drivers scattered around a center point, assigns each
  a reference cell and a bucket-token set derived from that cell, and writes
  the result back so the next start reuses it.
"""

import json
import logging
import os
import random
from typing import List, Optional

from ridecloak.data.models import Driver, DriverStatus
from ridecloak.service import geo
from ridecloak.service.buckets import BucketGenerator

logger = logging.getLogger(__name__)


def synthesize_drivers(
    count: int,
    center_lat: float,
    center_lon: float,
    spread_deg: float,
    resolution: int,
    generator: BucketGenerator,
    rng: Optional[random.Random] = None,
) -> List[Driver]:
    rng = rng or random.Random()
    drivers = []
    for i in range(1, count + 1):
        lat = round(center_lat + (rng.random() - 0.5) * spread_deg, 6)
        lon = round(center_lon + (rng.random() - 0.5) * spread_deg, 6)
        cell = geo.cell_of(lat, lon, resolution)
        driver_id = f"d-{i}"
        _, tokens = generator.derive(cell, scope=driver_id)
        drivers.append(Driver(driver_id, (lat, lon), cell, tuple(tokens), DriverStatus.AVAILABLE))
    return drivers


def _normalize(driver: Driver, resolution: int, generator: BucketGenerator) -> Driver:
    # the density scan compares cells at the reference resolution
    cell = geo.cell_of(driver.lat, driver.lon, resolution)
    tokens = driver.bucket_tokens
    if not tokens:
        _, derived = generator.derive(cell, scope=driver.id)
        tokens = tuple(derived)
    return Driver(driver.id, driver.location, cell, tokens, driver.status)


def load_drivers(path: str, resolution: int, generator: BucketGenerator) -> List[Driver]:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return [_normalize(Driver.from_dict(d), resolution, generator) for d in raw]


def save_drivers(path: str, drivers: List[Driver]):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([d.to_dict() for d in drivers], f, indent=2)


def bootstrap_drivers(settings, generator: BucketGenerator, rng: Optional[random.Random] = None) -> List[Driver]:
    path = settings.drivers_file
    if os.path.exists(path):
        drivers = load_drivers(path, settings.driver_cell_resolution, generator)
        logger.info("loaded %d drivers from %s", len(drivers), path)
        return drivers

    logger.info("no driver data at %s, generating %d drivers", path, settings.directory_size)
    drivers = synthesize_drivers(
        settings.directory_size,
        settings.center_lat,
        settings.center_lon,
        settings.spread_deg,
        settings.driver_cell_resolution,
        generator,
        rng,
    )
    save_drivers(path, drivers)
    return drivers
