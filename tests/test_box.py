"""
Tests for the Box value type.
"""

import dataclasses

import pytest

from fastestdet.box import Box, iou


def _box(x1, y1, x2, y2, score=0.9, class_id=0):
    return Box(x1=x1, y1=y1, x2=x2, y2=y2, score=score, class_id=class_id)


def test_derived_geometry():
    """Width, height and area are computed from the corners."""
    box = _box(10, 20, 40, 30)
    assert box.width == 30
    assert box.height == 10
    assert box.area == 300


def test_inverted_box_has_negative_area():
    """Malformed boxes are represented as-is, no guard."""
    box = _box(10, 0, 0, 5)
    assert box.width == -10
    assert box.area == -50


def test_box_is_immutable():
    box = _box(0, 0, 1, 1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        box.x1 = 5


def test_intersection_area():
    a = _box(0, 0, 10, 10)
    b = _box(5, 5, 15, 15)
    assert a.intersection_area(b) == 25
    assert b.intersection_area(a) == 25


def test_intersection_of_disjoint_and_touching_boxes_is_zero():
    a = _box(0, 0, 10, 10)
    assert a.intersection_area(_box(20, 20, 30, 30)) == 0
    assert a.intersection_area(_box(10, 0, 20, 10)) == 0
    # Overlap on x only
    assert a.intersection_area(_box(5, 50, 15, 60)) == 0


def test_iou_values():
    a = _box(0, 0, 10, 10)
    b = _box(5, 0, 15, 10)
    # intersection 50, union 150
    assert a.iou(b) == pytest.approx(1 / 3)


def test_iou_is_symmetric():
    pairs = [
        (_box(0, 0, 10, 10), _box(3, 4, 17, 12)),
        (_box(-5, -5, 5, 5), _box(0, 0, 2, 30)),
        (_box(0, 0, 1, 1), _box(100, 100, 200, 200)),
    ]
    for a, b in pairs:
        assert iou(a, b) == iou(b, a)


def test_iou_with_itself_is_one():
    box = _box(3, 7, 50, 90)
    assert box.iou(box) == 1.0


def test_iou_of_disjoint_boxes_is_zero():
    assert iou(_box(0, 0, 10, 10), _box(11, 11, 20, 20)) == 0.0


def test_iou_zero_union_is_zero():
    """Degenerate boxes never divide by zero."""
    point = _box(5, 5, 5, 5)
    assert point.iou(point) == 0.0


def test_to_dict_has_all_six_fields():
    box = _box(1, 2, 3, 4, score=0.123456789, class_id=7)
    assert box.to_dict() == {
        "x1": 1,
        "y1": 2,
        "x2": 3,
        "y2": 4,
        "score": 0.123456789,
        "class": 7,
    }


def test_to_dict_adds_label_when_names_cover_index():
    box = _box(0, 0, 1, 1, class_id=1)
    assert box.to_dict(["person", "bicycle"])["label"] == "bicycle"
    assert "label" not in box.to_dict(["person"])


def test_from_dict_round_trip():
    box = _box(-3, 2, 30, 40, score=0.987654321, class_id=4)
    assert Box.from_dict(box.to_dict(["a", "b", "c", "d", "e"])) == box


def test_from_dict_missing_key():
    with pytest.raises(ValueError, match="class"):
        Box.from_dict({"x1": 0, "y1": 0, "x2": 1, "y2": 1, "score": 0.5})


def test_label_falls_back_to_index():
    names = ["person", "bicycle"]
    assert _box(0, 0, 1, 1, class_id=1).label(names) == "bicycle"
    assert _box(0, 0, 1, 1, class_id=2).label(names) == "2"
    assert _box(0, 0, 1, 1, class_id=-1).label(names) == "-1"
    assert _box(0, 0, 1, 1, class_id=0).label() == "0"
    assert _box(0, 0, 1, 1, class_id=-1).class_name(names) is None
