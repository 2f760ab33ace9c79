import json
import logging
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Sequence, Tuple, Union

import numpy as np

from errors import InvalidInputError, LoadFailureError, UnsupportedVersionError
from geometry import Frustum
from spatial_index import BoundingCube, Node, NodeId, SpatialIndex

logger = logging.getLogger(__name__)

# Version 2 -> 3: bounding rect stored as double precision "min"/"edge_length"
# instead of single precision "deprecated_min"/"deprecated_edge_length".
# Version 2 is still converted on read.
CURRENT_VERSION = 3
MIGRATABLE_VERSIONS = (2,)
META_FILENAME = "meta.json"


# =========================
# NODE METADATA
# =========================

@dataclass(frozen=True)
class BoundingRect:
    min_x: float
    min_y: float
    edge_length: float

    def to_dict(self) -> Dict[str, float]:
        return {"min_x": self.min_x, "min_y": self.min_y, "edge_length": self.edge_length}


@dataclass(frozen=True)
class NodeMeta:
    id: str
    bounding_rect: BoundingRect

    @classmethod
    def from_node(cls, node: Node) -> "NodeMeta":
        cube = node.bounding_cube
        return cls(
            id=str(node.id),
            bounding_rect=BoundingRect(cube.min[0], cube.min[1], cube.edge_length),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "bounding_rect": self.bounding_rect.to_dict()}


# =========================
# META
# =========================

def _read_point(point: Any) -> Tuple[Any, Any]:
    # Points are stored either as [x, y] or as {"x": .., "y": ..}.
    if isinstance(point, dict):
        return point["x"], point["y"]
    x, y = point
    return x, y


def _read_bounding_rect(record: Dict[str, Any]) -> BoundingRect:
    if "min" in record:
        min_x, min_y = _read_point(record["min"])
        return BoundingRect(float(min_x), float(min_y), float(record["edge_length"]))

    # Single precision widened to double: exact.
    min_x, min_y = _read_point(record["deprecated_min"])
    return BoundingRect(
        float(np.float32(min_x)),
        float(np.float32(min_y)),
        float(np.float32(record["deprecated_edge_length"])),
    )


@dataclass(frozen=True)
class Meta:
    """Persisted description of one dataset's quadtree. Never mutated after load."""

    nodes: FrozenSet[NodeId]
    bounding_rect: BoundingRect
    tile_size: int
    deepest_level: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", frozenset(self.nodes))
        for node_id in self.nodes:
            if node_id.level > self.deepest_level:
                raise InvalidInputError(
                    f"Node {node_id} is deeper than deepest level {self.deepest_level}"
                )
            if not node_id.is_valid(4):
                raise InvalidInputError(f"Node {node_id} is not a quadtree node")

    @cached_property
    def index(self) -> SpatialIndex:
        rect = self.bounding_rect
        return SpatialIndex(
            self.nodes,
            BoundingCube((rect.min_x, rect.min_y), rect.edge_length),
            branching_factor=4,
        )

    # ─────────────────────────────────────────────
    # ENCODING
    # ─────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Meta":
        """
        Read a meta record of the current version, or the previous one.

        Raises UnsupportedVersionError for any other version and
        InvalidInputError when the record is malformed.
        """
        if not isinstance(data, dict):
            raise InvalidInputError("Meta record must be a JSON object")
        version = data.get("version")
        if version in MIGRATABLE_VERSIONS:
            logger.warning(
                "⚠️ Data is an older quadtree version: %s, current would be %s. "
                "If feasible, try upgrading it using `upgrade_meta.py`.",
                version,
                CURRENT_VERSION,
            )
        elif version != CURRENT_VERSION:
            raise UnsupportedVersionError(version, (CURRENT_VERSION,) + MIGRATABLE_VERSIONS)

        try:
            return cls(
                nodes=frozenset(
                    NodeId(int(n["level"]), int(n["index"])) for n in data["nodes"]
                ),
                bounding_rect=_read_bounding_rect(data["bounding_rect"]),
                tile_size=int(data["tile_size"]),
                deepest_level=int(data["deepest_level"]),
            )
        except InvalidInputError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInputError(f"Malformed meta record: {e!r}") from e

    def to_dict(self) -> Dict[str, Any]:
        rect = self.bounding_rect
        return {
            "version": CURRENT_VERSION,
            "bounding_rect": {
                "min": [rect.min_x, rect.min_y],
                "edge_length": rect.edge_length,
            },
            "tile_size": self.tile_size,
            "deepest_level": self.deepest_level,
            "nodes": [
                {"level": n.level, "index": n.index} for n in sorted(self.nodes)
            ],
        }

    @classmethod
    def from_disk(cls, filename: Union[str, Path]) -> "Meta":
        with open(filename, "r") as f:
            return cls.from_dict(json.load(f))

    def to_disk(self, filename: Union[str, Path]) -> None:
        with open(filename, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    # ─────────────────────────────────────────────
    # QUERIES
    # ─────────────────────────────────────────────

    def nodes_at_level(self, level: int, view_volume) -> List[NodeMeta]:
        if not 0 <= level <= self.deepest_level:
            raise InvalidInputError(
                f"Level must be between 0 and {self.deepest_level}, got {level}"
            )
        return [NodeMeta.from_node(n) for n in self.index.nodes_at_level(level, view_volume)]

    def get_nodes_for_level(self, level: int, matrix_entries: Sequence[float]) -> List[NodeMeta]:
        """Nodes at `level` seen by the camera with this view/projection matrix."""
        # TODO: find the covering of the view rectangle directly instead of
        # walking every level down to `level`.
        frustum = Frustum.from_matrix(matrix_entries)
        return self.nodes_at_level(level, frustum)


# =========================
# LOADER
# =========================

def load_meta(address: str) -> Meta:
    """Load the meta of the dataset stored in directory `address`."""
    path = Path(address) / META_FILENAME
    try:
        return Meta.from_disk(path)
    except OSError as e:
        raise LoadFailureError(address, str(e)) from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise LoadFailureError(address, f"could not parse {META_FILENAME}") from e
    except InvalidInputError as e:
        raise LoadFailureError(address, str(e)) from e
