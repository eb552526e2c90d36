"""Tests for scene graph flattening."""
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from vox_extractor.vox_rotation import IDENTITY, decode_rotation
from vox_extractor.vox_scene import SceneResolver
from vox_extractor.vox_types import FormatError, GroupNode, ShapeNode, TransformNode, WarningKind


def transform(node_id, child_id, translation=None, rotation=None, name=None):
    attributes = {"_name": name} if name else {}
    return TransformNode(
        id=node_id,
        attributes=attributes,
        child_id=child_id,
        layer_id=0,
        frames=[{}],
        translation=translation,
        rotation=rotation,
    )


def group(node_id, children_ids):
    return GroupNode(id=node_id, attributes={}, children_ids=children_ids)


def shape(node_id, *model_ids):
    return ShapeNode(id=node_id, attributes={}, models=[(model_id, {}) for model_id in model_ids])


def test_no_nodes_gives_origin_only():
    placements = SceneResolver([]).flatten()

    assert len(placements) == 1
    assert placements[0].position == (0, 0, 0)
    assert placements[0].rotation == IDENTITY
    assert not placements[0].is_resolved


def test_single_shape_under_root():
    """Without a group the shape resolves the origin record."""
    nodes = [transform(0, 1, translation=(0, 4, 0)), shape(1, 0)]
    placements = SceneResolver(nodes).flatten()

    assert len(placements) == 1
    assert placements[0].position == (0, 4, 0)
    assert placements[0].model_id == 0


def test_group_children():
    nodes = [
        transform(0, 1),
        group(1, [2, 4]),
        transform(2, 3, translation=(5, 0, 0), name="left"),
        shape(3, 0),
        transform(4, 5, translation=(0, 0, 7), rotation=decode_rotation(17)),
        shape(5, 1),
    ]
    placements = SceneResolver(nodes).flatten()

    assert len(placements) == 3
    assert placements[1].position == (5, 0, 0)
    assert placements[1].model_id == 0
    assert placements[1].name == "left"
    assert placements[2].position == (0, 0, 7)
    assert placements[2].model_id == 1
    assert placements[2].rotation == decode_rotation(17)


def test_siblings_do_not_share_state():
    """A translation on one branch must not leak into the next branch."""
    nodes = [
        transform(0, 1, translation=(1, 1, 1)),
        group(1, [2, 4]),
        transform(2, 3, translation=(10, 0, 0)),
        shape(3, 0),
        transform(4, 5),
        shape(5, 1),
    ]
    placements = SceneResolver(nodes).flatten()

    assert placements[0].position == (1, 1, 1)
    assert placements[1].position == (10, 0, 0)
    assert placements[2].position == (0, 0, 0)
    assert placements[2].rotation == IDENTITY


def test_nodes_found_by_id_not_order():
    nodes = [shape(3, 0), transform(2, 3), group(1, [2]), transform(0, 1)]
    placements = SceneResolver(nodes).flatten()

    assert placements[1].model_id == 0


def test_shape_fanout_warns_and_uses_first():
    resolver = SceneResolver([transform(0, 1), shape(1, 2, 3)])
    placements = resolver.flatten()

    assert placements[0].model_id == 2
    assert len(resolver.warnings) == 1
    assert resolver.warnings[0].kind == WarningKind.UNSUPPORTED_SHAPE_FANOUT


def test_shape_without_models():
    with pytest.raises(FormatError, match="references no models"):
        SceneResolver([transform(0, 1), shape(1)]).flatten()


def test_missing_node():
    with pytest.raises(FormatError, match="not defined"):
        SceneResolver([transform(0, 7)]).flatten()


def test_cycle():
    with pytest.raises(FormatError, match="own ancestor"):
        SceneResolver([transform(0, 1), group(1, [0])]).flatten()


def test_shared_shape_is_not_a_cycle():
    """Two branches may reference the same shape node."""
    nodes = [transform(0, 1), group(1, [2, 3]), transform(2, 4), transform(3, 4), shape(4, 0)]
    placements = SceneResolver(nodes).flatten()

    assert [p.model_id for p in placements[1:]] == [0, 0]


def test_group_of_bare_shapes():
    """Shapes directly under a group each get a fresh identity record."""
    nodes = [transform(0, 1, translation=(3, 3, 3)), group(1, [2, 3]), shape(2, 4), shape(3, 6)]
    placements = SceneResolver(nodes).flatten()

    assert len(placements) == 3
    assert [p.model_id for p in placements[1:]] == [4, 6]
    for placement in placements[1:]:
        assert placement.position == (0, 0, 0)
        assert placement.rotation == IDENTITY
