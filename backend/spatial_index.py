from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Tuple

from errors import InvalidInputError
from geometry import Aabb, Relation

# Quadtree nodes are 2-D; they get a thin vertical slab to be tested
# against 3-D view volumes.
SLAB_HALF_HEIGHT = 0.1

DIMENSIONS = {4: 2, 8: 3}


def _check_branching_factor(branching_factor: int) -> int:
    if branching_factor not in DIMENSIONS:
        raise InvalidInputError(
            f"Branching factor must be 4 (quadtree) or 8 (octree), got {branching_factor}"
        )
    return DIMENSIONS[branching_factor]


# =========================
# NODE ID
# =========================

@dataclass(frozen=True, order=True)
class NodeId:
    """
    Address of a node: its level (0 = root) and its position at that level.

    The index holds one base-B digit per step down from the root, so the
    children of (level, index) are (level + 1, index * B + c).
    """

    level: int
    index: int

    def __post_init__(self) -> None:
        if self.level < 0 or self.index < 0:
            raise InvalidInputError(f"Invalid node id ({self.level}, {self.index})")

    @classmethod
    def root(cls) -> "NodeId":
        return cls(0, 0)

    @classmethod
    def parse(cls, text: str) -> "NodeId":
        level, sep, index = text.partition("-")
        if not sep or not level.isdecimal() or not index.isdecimal():
            raise InvalidInputError(f"Invalid node id {text!r}")
        return cls(int(level), int(index))

    def __str__(self) -> str:
        return f"{self.level}-{self.index}"

    def is_valid(self, branching_factor: int) -> bool:
        return self.index < branching_factor ** self.level

    def child(self, child_index: int, branching_factor: int) -> "NodeId":
        if not 0 <= child_index < branching_factor:
            raise InvalidInputError(f"Child index {child_index} out of range")
        return NodeId(self.level + 1, self.index * branching_factor + child_index)

    def parent(self, branching_factor: int) -> "NodeId":
        if self.level == 0:
            raise InvalidInputError("The root node has no parent")
        return NodeId(self.level - 1, self.index // branching_factor)

    def path(self, branching_factor: int) -> List[int]:
        """Child indices taken from the root down to this node."""
        digits = []
        index = self.index
        for _ in range(self.level):
            index, digit = divmod(index, branching_factor)
            digits.append(digit)
        return digits[::-1]


# =========================
# BOUNDING VOLUMES
# =========================

@dataclass(frozen=True)
class BoundingCube:
    min: Tuple[float, ...]
    edge_length: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "min", tuple(float(v) for v in self.min))
        if len(self.min) not in (2, 3):
            raise InvalidInputError("Bounding cube must be 2-D or 3-D")
        if not self.edge_length > 0:
            raise InvalidInputError(f"Edge length must be > 0, got {self.edge_length}")

    @property
    def max(self) -> Tuple[float, ...]:
        return tuple(v + self.edge_length for v in self.min)

    def child(self, child_index: int) -> "BoundingCube":
        # Bit k of the child index selects the upper half along axis k.
        half = self.edge_length / 2.0
        child_min = tuple(
            v + half if (child_index >> axis) & 1 else v
            for axis, v in enumerate(self.min)
        )
        return BoundingCube(child_min, half)

    def contains_cube(self, other: "BoundingCube") -> bool:
        return all(a <= b for a, b in zip(self.min, other.min)) and all(
            a >= b for a, b in zip(self.max, other.max)
        )

    def to_aabb(self) -> Aabb:
        if len(self.min) == 2:
            return Aabb(
                self.min + (-SLAB_HALF_HEIGHT,),
                self.max + (SLAB_HALF_HEIGHT,),
            )
        return Aabb(self.min, self.max)


@dataclass(frozen=True)
class Node:
    id: NodeId
    bounding_cube: BoundingCube

    @classmethod
    def from_node_id(cls, node_id: NodeId, root_cube: BoundingCube, branching_factor: int) -> "Node":
        cube = root_cube
        for child_index in node_id.path(branching_factor):
            cube = cube.child(child_index)
        return cls(node_id, cube)

    @property
    def level(self) -> int:
        return self.id.level

    def child(self, child_index: int, branching_factor: int) -> "Node":
        return Node(
            self.id.child(child_index, branching_factor),
            self.bounding_cube.child(child_index),
        )


# =========================
# SPATIAL INDEX
# =========================

class SpatialIndex:
    """
    Quadtree/octree over a root bounding cube, restricted to the nodes that
    hold data. Immutable once built.
    """

    def __init__(
        self,
        nodes: Iterable[NodeId],
        bounding_cube: BoundingCube,
        branching_factor: int = 4,
    ) -> None:
        dims = _check_branching_factor(branching_factor)
        if len(bounding_cube.min) != dims:
            raise InvalidInputError(
                f"Branching factor {branching_factor} needs a {dims}-D bounding cube"
            )
        self.nodes: FrozenSet[NodeId] = frozenset(nodes)
        for node_id in self.nodes:
            if not node_id.is_valid(branching_factor):
                raise InvalidInputError(
                    f"Node {node_id} has an index out of range for its level"
                )
        self.bounding_cube = bounding_cube
        self.branching_factor = branching_factor

    def __contains__(self, node_id: NodeId) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def deepest_level(self) -> int:
        return max((n.level for n in self.nodes), default=0)

    def node(self, node_id: NodeId) -> Node:
        return Node.from_node_id(node_id, self.bounding_cube, self.branching_factor)

    def nodes_at_level(self, level: int, view_volume) -> List[Node]:
        """
        Nodes at `level` that hold data and are not disjoint from `view_volume`.

        `view_volume` is anything with an `intersect_aabb(Aabb) -> Relation`
        method. Result order is unspecified.
        """
        if level < 0:
            raise InvalidInputError(f"Level must be >= 0, got {level}")

        result = []
        open_nodes = [Node(NodeId.root(), self.bounding_cube)]
        while open_nodes:
            node = open_nodes.pop()
            if node.id not in self.nodes:
                continue
            if view_volume.intersect_aabb(node.bounding_cube.to_aabb()) == Relation.OUT:
                continue

            if node.level == level:
                result.append(node)
            else:
                for child_index in range(self.branching_factor):
                    open_nodes.append(node.child(child_index, self.branching_factor))
        return result
