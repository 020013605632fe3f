"""
Tests for non-maximum suppression.
"""

import numpy as np
import pytest

from fastestdet.box import Box
from fastestdet.nms import suppress


def _box(x1, y1, x2, y2, score, class_id=0):
    return Box(x1=x1, y1=y1, x2=x2, y2=y2, score=score, class_id=class_id)


def _random_boxes(seed: int, count: int = 60, num_classes: int = 3):
    rng = np.random.default_rng(seed)
    boxes = []
    for _ in range(count):
        x1, y1 = rng.integers(0, 200, size=2)
        w, h = rng.integers(1, 80, size=2)
        boxes.append(_box(
            int(x1), int(y1), int(x1 + w), int(y1 + h),
            score=float(rng.random()),
            class_id=int(rng.integers(0, num_classes)),
        ))
    return boxes


def test_suppress_empty():
    assert suppress([], 0.5) == []


def test_overlapping_same_class_keeps_higher_score():
    low = _box(1, 1, 11, 11, 0.8)
    high = _box(0, 0, 10, 10, 0.9)
    # IoU = 81 / 119
    assert suppress([low, high], 0.5) == [high]


def test_cross_class_boxes_never_suppress_each_other():
    a = _box(0, 0, 10, 10, 0.9, class_id=0)
    b = _box(0, 0, 10, 10, 0.8, class_id=1)
    assert suppress([b, a], 0.0) == [a, b]


def test_result_is_sorted_by_score():
    boxes = [
        _box(0, 0, 10, 10, 0.2),
        _box(100, 100, 110, 110, 0.7),
        _box(200, 200, 210, 210, 0.5),
    ]
    assert [b.score for b in suppress(boxes, 0.5)] == [0.7, 0.5, 0.2]


def test_input_is_not_mutated():
    boxes = [_box(0, 0, 10, 10, 0.2), _box(1, 1, 10, 10, 0.9)]
    snapshot = list(boxes)
    suppress(boxes, 0.3)
    assert boxes == snapshot


def test_zero_threshold_drops_any_positive_overlap():
    a = _box(0, 0, 100, 100, 0.9)
    b = _box(99, 99, 200, 200, 0.8)
    assert suppress([a, b], 0.0) == [a]


def test_threshold_one_keeps_overlapping_boxes():
    a = _box(0, 0, 100, 100, 0.9)
    b = _box(1, 0, 100, 100, 0.8)
    assert suppress([a, b], 1.0) == [a, b]


def test_threshold_one_keeps_identical_boxes():
    """IoU of identical boxes is 1, which is not strictly above a threshold of 1."""
    a = _box(0, 0, 100, 100, 0.9)
    b = _box(0, 0, 100, 100, 0.8)
    assert suppress([b, a], 1.0) == [a, b]


def test_overlap_equal_to_threshold_is_kept():
    """Suppression requires IoU strictly greater than the threshold."""
    a = _box(0, 0, 10, 10, 0.9)
    b = _box(5, 0, 15, 10, 0.8)  # IoU = 1/3
    assert suppress([a, b], a.iou(b)) == [a, b]


def test_degenerate_boxes_do_not_crash():
    a = _box(5, 5, 5, 5, 0.9)
    b = _box(5, 5, 5, 5, 0.8)
    assert suppress([a, b], 0.0) == [a, b]


def test_nan_scores_are_rejected():
    with pytest.raises(ValueError, match="NaN"):
        suppress([_box(0, 0, 1, 1, float("nan"))], 0.5)


@pytest.mark.parametrize("threshold", [0.0, 0.25, 0.45, 0.7, 1.0])
@pytest.mark.parametrize("seed", [0, 1, 2])
def test_suppression_properties(threshold, seed):
    boxes = _random_boxes(seed)
    kept = suppress(boxes, threshold)

    assert len(kept) <= len(boxes)
    assert suppress(kept, threshold) == kept

    for i, a in enumerate(kept):
        for b in kept[i + 1:]:
            if a.class_id == b.class_id:
                assert a.iou(b) <= threshold
