"""Flattening of the VOX scene graph into model placements.

The scene is a tree of transform (nTRN), group (nGRP) and shape (nSHP)
nodes linked by node id. Flattening is a pre-order walk that keeps a
single growing list of placements:

- a group appends a fresh placement before visiting each child
- a transform adds its translation to, and replaces the rotation of,
  the most recently appended placement
- a shape assigns its model to the most recently appended placement

The first placement is the scene origin and exists before the walk.
"""
from typing import Iterable, List, Set

from .vox_types import (
    FormatError,
    GroupNode,
    ModelPlacement,
    SceneNode,
    ShapeNode,
    TransformNode,
    VoxWarning,
    WarningKind,
)

ROOT_NODE_ID = 0


class SceneResolver:
    """Resolves scene nodes into an ordered list of ModelPlacement."""

    def __init__(self, nodes: Iterable[SceneNode]):
        """Initialize resolver.

        Args:
            nodes: Decoded scene nodes in any order; looked up by node id
        """
        self._nodes = {}
        for node in nodes:
            self._nodes[node.id] = node
        self.warnings: List[VoxWarning] = []

    def flatten(self, root_index: int = ROOT_NODE_ID) -> List[ModelPlacement]:
        """Walk the scene from root_index.

        Returns:
            Placements in traversal order; element 0 is the scene origin.
            A document without scene nodes yields just the origin.

        Raises:
            FormatError: If a node references a missing id or a cycle
        """
        placements = [ModelPlacement()]
        if self._nodes:
            self._visit(placements, root_index, set())
        return placements

    def _visit(self, placements: List[ModelPlacement], node_id: int, ancestors: Set[int]):
        node = self._nodes.get(node_id)
        if node is None:
            raise FormatError(f"Scene node {node_id} is referenced but not defined")
        if node_id in ancestors:
            raise FormatError(f"Scene node {node_id} is its own ancestor")
        ancestors.add(node_id)

        current = placements[-1]
        if isinstance(node, TransformNode):
            if node.translation is not None:
                current.position = tuple(p + t for p, t in zip(current.position, node.translation))
            if node.rotation is not None:
                current.rotation = node.rotation
            if node.name:
                current.name = node.name
            self._visit(placements, node.child_id, ancestors)

        elif isinstance(node, GroupNode):
            for child_id in node.children_ids:
                placements.append(ModelPlacement())
                self._visit(placements, child_id, ancestors)

        elif isinstance(node, ShapeNode):
            if not node.models:
                raise FormatError(f"Shape node {node.id} references no models")
            if len(node.models) > 1:
                # Only the first model is used; the format does not say
                # what several entries mean
                self.warnings.append(VoxWarning(
                    kind=WarningKind.UNSUPPORTED_SHAPE_FANOUT,
                    message=(
                        f"Shape node {node.id} references {len(node.models)} models; "
                        f"only model {node.models[0][0]} is used"
                    ),
                ))
            current.model_id = node.models[0][0]

        ancestors.discard(node_id)
