"""H3 cell indexing: coordinates to cells, cells to centers, grid distance."""

import math
from typing import Tuple

import h3

from ridecloak.service.errors import InvalidInput

MIN_RESOLUTION = 0
MAX_RESOLUTION = 15


def validate_point(lat: float, lon: float):
    if isinstance(lat, bool) or isinstance(lon, bool):
        raise InvalidInput("coordinates must be numbers")
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        raise InvalidInput("coordinates must be numbers")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidInput("coordinates must be finite")
    if not -90.0 <= lat <= 90.0:
        raise InvalidInput(f"latitude {lat} out of range [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InvalidInput(f"longitude {lon} out of range [-180, 180]")
    return lat, lon


def validate_resolution(resolution: int) -> int:
    if isinstance(resolution, bool) or not isinstance(resolution, int):
        raise InvalidInput(f"resolution must be an integer, got {resolution!r}")
    if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
        raise InvalidInput(f"resolution {resolution} out of range [{MIN_RESOLUTION}, {MAX_RESOLUTION}]")
    return resolution


def validate_cell(cell: str) -> str:
    if not isinstance(cell, str) or not h3.is_valid_cell(cell):
        raise InvalidInput(f"invalid cell id {cell!r}")
    return cell


def cell_of(lat: float, lon: float, resolution: int) -> str:
    lat, lon = validate_point(lat, lon)
    validate_resolution(resolution)
    return h3.latlng_to_cell(lat, lon, resolution)


def center_of(cell: str) -> Tuple[float, float]:
    """Representative center of a cell. Lossy: the original point is not recoverable."""
    validate_cell(cell)
    return h3.cell_to_latlng(cell)


def resolution_of(cell: str) -> int:
    validate_cell(cell)
    return h3.get_resolution(cell)


def cell_distance(cell_a: str, cell_b: str) -> int:
    """Grid steps between two cells of the same resolution."""
    validate_cell(cell_a)
    validate_cell(cell_b)
    if cell_a == cell_b:
        return 0
    if h3.get_resolution(cell_a) != h3.get_resolution(cell_b):
        raise InvalidInput(f"resolution mismatch between {cell_a} and {cell_b}")
    try:
        return h3.grid_distance(cell_a, cell_b)
    except h3.H3BaseException as e:
        # too far apart or across a pentagon
        raise InvalidInput(f"grid distance undefined between {cell_a} and {cell_b}: {e}")
