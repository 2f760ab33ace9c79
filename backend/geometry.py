"""
Convex regions and the separating-axis test.

Every region is an 8-corner convex polyhedron given as two rings of four
corners (the "lower" ring first, then the "upper" ring, both with the same
winding). Edges and face normals are derived once from the corners.

Corner layout:

        7 ------ 6
       /|       /|         upper ring: 4 5 6 7
      4 ------ 5 |
      | 3 -----|-2         lower ring: 0 1 2 3
      |/       |/
      0 ------ 1
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Sequence

import numpy as np

from errors import InvalidInputError

# Cross products of unit edges shorter than this are near-parallel pairs.
AXIS_EPSILON = 1e-6
# Relative to the extent of the shape.
DEGENERATE_EPSILON = 1e-9

# (from, to) corner pairs: lower ring, upper ring, vertical connectors.
EDGE_CORNERS = (
    (0, 1), (1, 2), (2, 3), (3, 0),
    (4, 5), (5, 6), (6, 7), (7, 4),
    (0, 4), (1, 5), (2, 6), (3, 7),
)

# (edge, edge) pairs spanning each face, and the corners on that face.
FACES = (
    ((0, 8), (0, 1, 5, 4)),
    ((1, 9), (1, 2, 6, 5)),
    ((2, 10), (2, 3, 7, 6)),
    ((3, 11), (3, 0, 4, 7)),
    ((1, 0), (0, 1, 2, 3)),
    ((5, 4), (4, 5, 6, 7)),
)

BOX_AXES = np.eye(3)


class Relation(Enum):
    OUT = "out"  # a separating axis exists
    IN = "in"  # one shape encloses the other
    CROSS = "cross"  # partial overlap


class ConvexRegion(Protocol):
    """Anything that can describe itself as an 8-corner convex polyhedron."""

    def corners(self) -> np.ndarray:
        ...

    def contains(self, point) -> bool:
        ...


def _as_points(points, count: int) -> np.ndarray:
    array = np.asarray(points, dtype=np.float64)
    if array.shape != (count, 3):
        raise InvalidInputError(f"Expected {count} 3-D points, got shape {array.shape}")
    if not np.all(np.isfinite(array)):
        raise InvalidInputError("Points must be finite")
    return array


def _unit(vectors: np.ndarray) -> np.ndarray:
    return vectors / np.linalg.norm(vectors, axis=-1, keepdims=True)


def _cross_axes(edges_a: np.ndarray, edges_b: np.ndarray) -> np.ndarray:
    """Pairwise edge cross products, skipping near-parallel pairs."""
    crosses = np.cross(edges_a[:, None, :], edges_b[None, :, :]).reshape(-1, 3)
    lengths = np.linalg.norm(crosses, axis=1)
    keep = lengths > AXIS_EPSILON
    return crosses[keep] / lengths[keep, None]


def _separated(axes: np.ndarray, corners_a: np.ndarray, corners_b: np.ndarray) -> bool:
    projected_a = corners_a @ axes.T
    projected_b = corners_b @ axes.T
    disjoint = (projected_a.max(axis=0) < projected_b.min(axis=0)) | (
        projected_b.max(axis=0) < projected_a.min(axis=0)
    )
    return bool(disjoint.any())


@dataclass(frozen=True)
class Aabb:
    min: tuple
    max: tuple

    def __post_init__(self) -> None:
        lo = tuple(float(v) for v in self.min)
        hi = tuple(float(v) for v in self.max)
        if len(lo) != 3 or len(hi) != 3:
            raise InvalidInputError("Aabb corners must be 3-D")
        if any(a > b for a, b in zip(lo, hi)):
            raise InvalidInputError(f"Aabb min {lo} is not below max {hi}")
        object.__setattr__(self, "min", lo)
        object.__setattr__(self, "max", hi)

    def corners(self) -> np.ndarray:
        (x0, y0, z0), (x1, y1, z1) = self.min, self.max
        return np.array(
            [
                (x0, y0, z0), (x1, y0, z0), (x1, y1, z0), (x0, y1, z0),
                (x0, y0, z1), (x1, y0, z1), (x1, y1, z1), (x0, y1, z1),
            ],
            dtype=np.float64,
        )

    def contains(self, point) -> bool:
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.min) and np.all(p <= self.max))

    def contains_all(self, points: np.ndarray) -> bool:
        return bool(np.all(points >= self.min) and np.all(points <= self.max))


class GeometricRegion:
    """
    Convex polyhedron with precomputed edge directions and face normals.

    Raises InvalidInputError when any edge or face is degenerate.
    """

    def __init__(self, corners: Sequence) -> None:
        self._corners = _as_points(corners, 8)
        self._corners.setflags(write=False)

        extent = float(np.ptp(self._corners, axis=0).max())
        self._tolerance = DEGENERATE_EPSILON * max(extent, 1.0)

        starts = self._corners[[a for a, _ in EDGE_CORNERS]]
        ends = self._corners[[b for _, b in EDGE_CORNERS]]
        edge_vectors = ends - starts
        if np.any(np.linalg.norm(edge_vectors, axis=1) <= self._tolerance):
            raise InvalidInputError("Degenerate polyhedron: an edge has zero length")
        self.edges = _unit(edge_vectors)

        centroid = self._corners.mean(axis=0)
        normals = []
        for (first, second), face_corners in FACES:
            normal = np.cross(self.edges[first], self.edges[second])
            if np.linalg.norm(normal) <= AXIS_EPSILON:
                raise InvalidInputError("Degenerate polyhedron: a face has no area")
            normal = normal / np.linalg.norm(normal)
            # Outward, whatever winding the caller used.
            if normal @ (self._corners[list(face_corners)].mean(axis=0) - centroid) < 0:
                normal = -normal
            normals.append(normal)
        self.face_normals = np.array(normals)
        # Supporting plane offset of every face along its own normal.
        self._face_limits = (self._corners @ self.face_normals.T).max(axis=0)

        self.edges.setflags(write=False)
        self.face_normals.setflags(write=False)

    @classmethod
    def from_region(cls, region: ConvexRegion) -> "GeometricRegion":
        if isinstance(region, GeometricRegion):
            return region
        return cls(region.corners())

    def corners(self) -> np.ndarray:
        return self._corners

    def contains(self, point) -> bool:
        """True iff the point is on the inner side of all six faces."""
        return self.contains_all(_as_points([point], 1))

    def contains_all(self, points: np.ndarray) -> bool:
        distances = np.asarray(points) @ self.face_normals.T
        return bool(np.all(distances <= self._face_limits + self._tolerance))

    def intersect(self, other: ConvexRegion) -> Relation:
        other = GeometricRegion.from_region(other)
        axes = np.vstack(
            [
                self.face_normals,
                other.face_normals,
                _cross_axes(self.edges, other.edges),
            ]
        )
        if _separated(axes, self._corners, other.corners()):
            return Relation.OUT
        if self.contains_all(other.corners()) or other.contains_all(self._corners):
            return Relation.IN
        return Relation.CROSS

    def intersect_aabb(self, box: Aabb) -> Relation:
        box_corners = box.corners()
        axes = np.vstack(
            [
                self.face_normals,
                BOX_AXES,
                _cross_axes(self.edges, BOX_AXES),
            ]
        )
        if _separated(axes, self._corners, box_corners):
            return Relation.OUT
        if self.contains_all(box_corners) or box.contains_all(self._corners):
            return Relation.IN
        return Relation.CROSS

    def __repr__(self) -> str:
        lo = self._corners.min(axis=0)
        hi = self._corners.max(axis=0)
        return f"{type(self).__name__}(extent={lo.tolist()}..{hi.tolist()})"


# =========================
# FRUSTUM
# =========================

# Normalized device coordinates: near ring, then far ring.
NDC_CORNERS = np.array(
    [
        (-1, -1, -1, 1), (1, -1, -1, 1), (1, 1, -1, 1), (-1, 1, -1, 1),
        (-1, -1, 1, 1), (1, -1, 1, 1), (1, 1, 1, 1), (-1, 1, 1, 1),
    ],
    dtype=np.float64,
)


class Frustum(GeometricRegion):
    @classmethod
    def from_matrix(cls, matrix_entries: Sequence[float]) -> "Frustum":
        """
        Build a frustum from 16 matrix entries in column-major (WebGL) order.

        Raises InvalidInputError when the matrix cannot describe a frustum.
        """
        entries = np.asarray(matrix_entries, dtype=np.float64).ravel()
        if entries.size != 4 * 4:
            raise InvalidInputError(
                f"Expected {4 * 4} entries in matrix, got {entries.size}"
            )
        if not np.all(np.isfinite(entries)):
            raise InvalidInputError("Matrix entries must be finite")

        matrix = entries.reshape(4, 4).T
        try:
            inverse = np.linalg.inv(matrix)
        except np.linalg.LinAlgError as e:
            raise InvalidInputError("Unable to create frustum from matrix") from e

        homogeneous = NDC_CORNERS @ inverse.T
        w = homogeneous[:, 3:]
        if np.any(np.abs(w) < 1e-12):
            raise InvalidInputError("Unable to create frustum from matrix: infinite far plane")
        return cls(homogeneous[:, :3] / w)
