"""Web Mercator map coordinates and conversions to the earth-centered frame."""

import math
import threading
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from pyproj import Transformer

# Deepest zoom level at which zoomed coordinates are accepted.
MAX_ZOOM = 23
# Size in pixels of a map tile; the whole map is TILE_SIZE px wide at zoom 0.
TILE_SIZE = 256

# WGS84 lon/lat/height and earth-centered, earth-fixed.
GEODETIC_CRS = "EPSG:4979"
ECEF_CRS = "EPSG:4978"

_local = threading.local()


def _transformers() -> Tuple[Transformer, Transformer]:
    # pyproj transformers are not shared across threads.
    pair = getattr(_local, "transformers", None)
    if pair is None:
        pair = (
            Transformer.from_crs(GEODETIC_CRS, ECEF_CRS, always_xy=True),
            Transformer.from_crs(ECEF_CRS, GEODETIC_CRS, always_xy=True),
        )
        _local.transformers = pair
    return pair


def geodetic_to_ecef(lat_deg, lng_deg, elevation_m) -> np.ndarray:
    """Convert WGS84 lat/lng/elevation to an (N, 3) array of ECEF points."""
    forward, _ = _transformers()
    lat, lng, elevation = np.broadcast_arrays(
        np.atleast_1d(np.asarray(lat_deg, dtype=np.float64)),
        np.atleast_1d(np.asarray(lng_deg, dtype=np.float64)),
        np.atleast_1d(np.asarray(elevation_m, dtype=np.float64)),
    )
    x, y, z = forward.transform(lng.copy(), lat.copy(), elevation.copy())
    return np.column_stack([x, y, z])


def ecef_to_geodetic(point: Sequence[float]) -> Tuple[float, float, float]:
    """Convert an ECEF point to (lat_deg, lng_deg, elevation_m)."""
    _, backward = _transformers()
    x, y, z = (float(v) for v in point)
    lng, lat, elevation = backward.transform(x, y, z)
    return float(lat), float(lng), float(elevation)


@dataclass(frozen=True, order=True)
class WebMercatorCoord:
    """
    A position on the Web Mercator map, normalized to [0, 1] on both axes.

    x grows eastwards from -180° and y grows southwards from ~85.05°N, so the
    north-west corner of any rectangle is its component-wise minimum.
    """

    x: float
    y: float

    @classmethod
    def from_zoomed_coordinate(cls, coord: Sequence[float], zoom: int) -> Optional["WebMercatorCoord"]:
        """
        Pixel coordinates at zoom level `zoom` -> normalized coordinate.

        Returns None when the zoom is deeper than MAX_ZOOM or the coordinate
        falls outside the map at that zoom level.
        """
        if zoom < 0 or zoom > MAX_ZOOM:
            return None
        map_size = float(TILE_SIZE * 2 ** zoom)
        x, y = (float(v) for v in coord)
        if not (0.0 <= x <= map_size and 0.0 <= y <= map_size):
            return None
        return cls(x / map_size, y / map_size)

    @classmethod
    def from_lat_lng(cls, lat_deg: float, lng_deg: float) -> "WebMercatorCoord":
        x = (lng_deg + 180.0) / 360.0
        y = (1.0 - math.asinh(math.tan(math.radians(lat_deg))) / math.pi) / 2.0
        return cls(x, y)

    def to_lat_lng(self) -> Tuple[float, float]:
        lng = self.x * 360.0 - 180.0
        lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * self.y))))
        return lat, lng

    def to_zoomed_coordinate(self, zoom: int) -> Tuple[float, float]:
        map_size = float(TILE_SIZE * 2 ** zoom)
        return self.x * map_size, self.y * map_size

    def partial_le(self, other: "WebMercatorCoord") -> bool:
        return self.x <= other.x and self.y <= other.y

    def partial_lt(self, other: "WebMercatorCoord") -> bool:
        return self.x < other.x and self.y < other.y
