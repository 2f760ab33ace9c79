"""
Volume of space that projects into a Web Mercator rectangle.

The rectangle's four corners are extruded along their altitude axis between a
minimum and a maximum elevation, which gives a convex polyhedron in the
earth-centered frame.
"""

from dataclasses import dataclass
from functools import cached_property
from typing import Optional, Sequence

import numpy as np

from errors import InvalidInputError
from geometry import Aabb, ConvexRegion, GeometricRegion, Relation
from web_mercator import WebMercatorCoord, ecef_to_geodetic, geodetic_to_ecef

# The dead sea is at -413m, but we use a more generous minimum.
MIN_ELEVATION_M = -1000.0
# Mt. Everest is at 8,848m, plus some safety margin.
MAX_ELEVATION_M = 9000.0


@dataclass(frozen=True)
class ProjectedVolume:
    """
    A non-rotated rectangle on a Web Mercator map, seen as a 3-D volume.

    Rectangles crossing the ±180° longitude line are not supported.
    """

    north_west: WebMercatorCoord
    south_east: WebMercatorCoord

    @classmethod
    def from_zoomed_coordinates(
        cls, min_corner: Sequence[float], max_corner: Sequence[float], zoom: int
    ) -> Optional["ProjectedVolume"]:
        """
        Rectangle between two pixel coordinates at zoom level `zoom`.

        The corners may come in any order. Returns None when `zoom` is deeper
        than MAX_ZOOM or either coordinate is off the map at that zoom.
        """
        a = np.asarray(min_corner, dtype=np.float64)
        b = np.asarray(max_corner, dtype=np.float64)
        north_west = WebMercatorCoord.from_zoomed_coordinate(np.minimum(a, b), zoom)
        south_east = WebMercatorCoord.from_zoomed_coordinate(np.maximum(a, b), zoom)
        if north_west is None or south_east is None:
            return None
        return cls(north_west=north_west, south_east=south_east)

    @classmethod
    def create(
        cls, min_corner: Sequence[float], max_corner: Sequence[float], zoom: int
    ) -> "ProjectedVolume":
        """Like from_zoomed_coordinates, but raises InvalidInputError."""
        volume = cls.from_zoomed_coordinates(min_corner, max_corner, zoom)
        if volume is None:
            raise InvalidInputError(
                f"Tile rectangle {list(min_corner)}-{list(max_corner)} "
                f"is not valid at zoom level {zoom}"
            )
        return volume

    def corners(self) -> np.ndarray:
        """NW, NE, SE, SW at the minimum elevation, then the same at the maximum."""
        nw_lat, nw_lng = self.north_west.to_lat_lng()
        se_lat, se_lng = self.south_east.to_lat_lng()
        lats = [nw_lat, nw_lat, se_lat, se_lat] * 2
        lngs = [nw_lng, se_lng, se_lng, nw_lng] * 2
        elevations = [MIN_ELEVATION_M] * 4 + [MAX_ELEVATION_M] * 4
        return geodetic_to_ecef(lats, lngs, elevations)

    @cached_property
    def region(self) -> GeometricRegion:
        """The extruded polyhedron. Raises InvalidInputError for an empty rectangle."""
        return GeometricRegion(self.corners())

    def contains_web_mercator(self, coord: WebMercatorCoord) -> bool:
        # South-east bound is exclusive so adjacent tiles don't share points.
        return self.north_west.partial_le(coord) and coord.partial_lt(self.south_east)

    def contains(self, point: Sequence[float]) -> bool:
        lat, lng, _ = ecef_to_geodetic(point)
        return self.contains_web_mercator(WebMercatorCoord.from_lat_lng(lat, lng))

    def intersect(self, other: ConvexRegion) -> Relation:
        if isinstance(other, ProjectedVolume):
            other = other.region
        return self.region.intersect(other)

    def intersect_aabb(self, box: Aabb) -> Relation:
        return self.region.intersect_aabb(box)
