"""
Geographic helpers for rectangle queries.

Rectangles are given in degrees as west, south, east, north. A rectangle
whose west edge is greater than its east edge crosses the anti-meridian.
Store queries only ever see non-wrapping rectangles produced by
``split_at_anti_meridian()``.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

EARTH_RADIUS_METER = 6371000.0
METER_PER_NM = 1852.0


def nm_to_meter(nm: float) -> float:
    return nm * METER_PER_NM


def normalize_lon(lon: float) -> float:
    """Bring longitude into the range -180 to 180."""
    if -180.0 <= lon <= 180.0:
        return lon
    return ((lon + 180.0) % 360.0) - 180.0


@dataclass(frozen=True)
class Pos:
    """Position in WGS84 degrees with optional altitude in feet."""
    latitude: float
    longitude: float
    altitude_ft: Optional[float] = None


@dataclass(frozen=True)
class Rect:
    """
    Latitude/longitude box in degrees.

    west > east means the box crosses the anti-meridian.
    """
    west: float
    south: float
    east: float
    north: float

    @property
    def crosses_anti_meridian(self) -> bool:
        return self.west > self.east

    @property
    def lon_span(self) -> float:
        span = self.east - self.west
        return span + 360.0 if span < 0 else span

    @property
    def lat_span(self) -> float:
        return self.north - self.south

    def is_valid(self) -> bool:
        return (
            -90.0 <= self.south <= self.north <= 90.0 and
            -180.0 <= self.west <= 180.0 and
            -180.0 <= self.east <= 180.0
        )

    def lon_intervals(self) -> List[Tuple[float, float]]:
        """Longitude ranges covered, split at the anti-meridian."""
        if self.crosses_anti_meridian:
            return [(self.west, 180.0), (-180.0, self.east)]
        return [(self.west, self.east)]

    def split(self) -> List['Rect']:
        """Return one or two rectangles that do not cross the anti-meridian."""
        return [Rect(west, self.south, east, self.north) for west, east in self.lon_intervals()]

    def contains(self, other: 'Rect') -> bool:
        """Check if other lies completely inside this rectangle."""
        if other.south < self.south or other.north > self.north:
            return False

        own = self.lon_intervals()
        for other_west, other_east in other.lon_intervals():
            if not any(west <= other_west and other_east <= east for west, east in own):
                return False
        return True

    def inflated(self, factor: float, increment: float) -> 'Rect':
        """
        Grow the rectangle by a relative factor plus a fixed increment in degrees.

        Each side moves by half of span * factor plus the increment. Latitude
        is clamped at the poles, longitude wraps and a box that grows beyond
        the full circle covers the whole world.
        """
        dlon = self.lon_span * factor / 2.0 + increment
        dlat = self.lat_span * factor / 2.0 + increment

        south = max(-90.0, self.south - dlat)
        north = min(90.0, self.north + dlat)

        if self.lon_span + 2.0 * dlon >= 360.0:
            return Rect(-180.0, south, 180.0, north)

        return Rect(normalize_lon(self.west - dlon), south, normalize_lon(self.east + dlon), north)

    def to_dict(self) -> dict:
        return {'west': self.west, 'south': self.south, 'east': self.east, 'north': self.north}


def split_at_anti_meridian(rect: Rect, factor: float = 0.0, increment: float = 0.0) -> List[Rect]:
    """
    Inflate a query rectangle and split it into non-wrapping parts.

    Returns one rectangle or two if the inflated box crosses the anti-meridian.
    """
    return rect.inflated(factor, increment).split()


def distances_meter(
    lats1: Sequence[float], lons1: Sequence[float],
    lats2: Sequence[float], lons2: Sequence[float],
) -> np.ndarray:
    """
    Vectorised haversine distance in meters for pairs of positions.

    All four sequences must have the same length. Returns an array of
    distances, one per pair.
    """
    lat1 = np.radians(np.asarray(lats1, dtype=float))
    lat2 = np.radians(np.asarray(lats2, dtype=float))
    delta_lat = lat2 - lat1
    delta_lon = np.radians(np.asarray(lons2, dtype=float) - np.asarray(lons1, dtype=float))

    a = np.sin(delta_lat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(delta_lon / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    return 2 * EARTH_RADIUS_METER * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
