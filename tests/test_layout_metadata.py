"""Tests for layout metadata models.

These tests verify the position map models and their durable form.
"""

import pytest

from graphlayout.models.layout_metadata import (
    BoundingBox,
    NodePosition,
    SessionLayout,
    positions_from_dict,
    positions_to_dict,
)


class TestNodePosition:
    """Test NodePosition model."""

    def test_from_list(self):
        pos = NodePosition.from_list([100.0, 200.0])
        assert pos.x == 100.0
        assert pos.y == 200.0
        assert pos.to_list() == [100.0, 200.0]

    def test_from_list_invalid_length(self):
        """Test that invalid list length raises error."""
        with pytest.raises(ValueError, match="must be \\[x, y\\]"):
            NodePosition.from_list([1.0, 2.0, 3.0])

    def test_is_finite(self):
        assert NodePosition(x=0, y=-5).is_finite
        assert not NodePosition(x=float("nan"), y=0).is_finite
        assert not NodePosition(x=0, y=float("-inf")).is_finite


class TestBoundingBox:
    """Test BoundingBox model."""

    def test_from_positions(self):
        bbox = BoundingBox.from_positions({
            "a": NodePosition(x=0, y=10),
            "b": NodePosition(x=100, y=50),
        })
        assert (bbox.min_x, bbox.max_x, bbox.min_y, bbox.max_y) == (0, 100, 10, 50)
        assert bbox.width == 100
        assert bbox.height == 40
        assert bbox.center == (50, 30)

    def test_empty_raises(self):
        with pytest.raises(ValueError, match="empty"):
            BoundingBox.from_positions({})


class TestDurableForm:
    """Test the {node_id: {x, y}} serialization."""

    def test_to_dict_sorted(self):
        data = positions_to_dict({"b": NodePosition(x=1, y=2), "a": NodePosition(x=3, y=4)})
        assert list(data) == ["a", "b"]
        assert data["a"] == {"x": 3.0, "y": 4.0}

    def test_from_dict_accepts_both_forms(self):
        positions = positions_from_dict({"a": {"x": 1, "y": 2}, "b": [3, 4]})
        assert positions == {"a": NodePosition(x=1, y=2), "b": NodePosition(x=3, y=4)}

    def test_from_dict_skips_garbage(self):
        positions = positions_from_dict({
            "a": {"x": 1},
            "b": [1, 2, 3],
            "c": "nowhere",
            "d": {"x": "left", "y": 0},
        })
        assert positions == {}

    def test_session_layout_to_dict(self):
        layout = SessionLayout(fingerprint="00c0ffee", positions={"n": NodePosition(x=1, y=1)})
        assert layout.to_dict() == {
            "fingerprint": "00c0ffee",
            "positions": {"n": {"x": 1.0, "y": 1.0}},
        }
        assert SessionLayout.model_validate(layout.to_dict()) == layout
