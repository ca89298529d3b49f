"""Tests for layout strategies."""

import pytest

from diagram_sync.layout import (
    LAYOUT_STRATEGIES,
    apply_layout,
    force_layout,
    get_layout,
    grid_layout,
    tree_layout,
    waterfall_layout,
)
from diagram_sync.models import RenderEdge, RenderNode


def make_node(stable_id, x=None, y=None):
    return RenderNode(
        stable_id=stable_id,
        text_id=stable_id.upper(),
        label=stable_id,
        x=x,
        y=y,
        has_position=x is not None and y is not None,
    )


def make_edge(source, target):
    return RenderEdge(stable_id=f"e_{source}{target}", source_id=source, target_id=target)


class TestWaterfall:
    def test_cascade_by_index(self):
        nodes = [make_node("a"), make_node("b"), make_node("c")]
        assert waterfall_layout(nodes, []) == {
            "a": (100, 100),
            "b": (250, 200),
            "c": (400, 300),
        }

    def test_positioned_nodes_keep_their_slot(self):
        nodes = [make_node("a", 5, 5), make_node("b")]
        assert waterfall_layout(nodes, []) == {"b": (250, 200)}


class TestGrid:
    def test_free_nodes_go_below_positioned_ones(self):
        nodes = [make_node("a", 0, 400), make_node("b"), make_node("c")]
        positions = grid_layout(nodes, [])

        assert set(positions) == {"b", "c"}
        assert all(y >= 550 for _, y in positions.values())

    def test_nothing_to_do(self):
        assert grid_layout([make_node("a", 1, 1)], []) == {}


class TestTree:
    def test_children_below_parent(self):
        nodes = [make_node("a"), make_node("b"), make_node("c")]
        edges = [make_edge("a", "b"), make_edge("a", "c")]
        positions = tree_layout(nodes, edges)

        assert positions["a"] == (100, 100)
        assert positions["b"][1] == positions["c"][1] == 250
        assert positions["b"][0] != positions["c"][0]

    def test_horizontal(self):
        nodes = [make_node("a"), make_node("b")]
        positions = tree_layout(nodes, [make_edge("a", "b")], orientation="horizontal")
        assert positions["b"] == (300, 100)

    def test_cycle_still_gets_positions(self):
        nodes = [make_node("a"), make_node("b")]
        edges = [make_edge("a", "b"), make_edge("b", "a")]
        assert set(tree_layout(nodes, edges)) == {"a", "b"}


class TestForce:
    def test_only_free_nodes_are_returned(self):
        nodes = [make_node("a", 100, 100), make_node("b"), make_node("c")]
        positions = force_layout(nodes, [make_edge("a", "b")], iterations=10)

        assert set(positions) == {"b", "c"}

    def test_single_free_node(self):
        positions = force_layout([make_node("a")], [])
        assert set(positions) == {"a"}


class TestApplyLayout:
    def test_fills_missing_positions_only(self):
        nodes = [make_node("a", 7, 8), make_node("b")]
        result = apply_layout(nodes, [], waterfall_layout)

        assert (result[0].x, result[0].y) == (7, 8)
        assert (result[1].x, result[1].y) == (250, 200)
        assert result[1].has_position is False
        assert nodes[1].x is None

    def test_get_layout(self):
        assert get_layout("tree") is tree_layout
        assert set(LAYOUT_STRATEGIES) == {"waterfall", "grid", "tree", "force"}

    def test_unknown_layout(self):
        with pytest.raises(ValueError, match="Unknown layout strategy"):
            get_layout("spiral")
