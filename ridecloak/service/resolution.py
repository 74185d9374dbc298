"""Density-aware cell resolution.

Dense areas get fine cells (many candidates already provide crowd cover);
sparse areas get coarse cells so a lone rider cannot be singled out.
"""

import logging
from typing import Iterable, List, Tuple

from ridecloak.data.models import Driver
from ridecloak.service import geo
from ridecloak.service.errors import InvalidInput

logger = logging.getLogger(__name__)

REFERENCE_RESOLUTION = 9
DENSITY_RADIUS = 3

# (density strictly greater than, resolution); first match wins
DENSITY_THRESHOLDS: List[Tuple[int, int]] = [
    (50, 9),
    (10, 7),
]
SPARSE_RESOLUTION = 5


def resolution_for_density(density: int) -> int:
    for threshold, resolution in DENSITY_THRESHOLDS:
        if density > threshold:
            return resolution
    return SPARSE_RESOLUTION


def count_nearby(reference_cell: str, drivers: Iterable[Driver], radius: int = DENSITY_RADIUS) -> int:
    count = 0
    for driver in drivers:
        try:
            if geo.cell_distance(reference_cell, driver.cell) <= radius:
                count += 1
        except InvalidInput:
            # different resolution or unmeasurable distance: not nearby
            continue
    return count


def select_resolution(
    point: Tuple[float, float],
    drivers: Iterable[Driver],
    reference_resolution: int = REFERENCE_RESOLUTION,
    radius: int = DENSITY_RADIUS,
) -> int:
    """Pick the order's cell resolution from the driver density around `point`.

    Evaluated per call against whatever directory snapshot is passed in; never cached.
    """
    lat, lon = point
    reference_cell = geo.cell_of(lat, lon, reference_resolution)
    density = count_nearby(reference_cell, drivers, radius)
    resolution = resolution_for_density(density)
    logger.debug("density=%d within %d steps of %s -> resolution %d",
                 density, radius, reference_cell, resolution)
    return resolution
