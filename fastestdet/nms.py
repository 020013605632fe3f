"""
Non-maximum suppression.

Responsibility:
    Greedily keep the highest-scoring boxes and drop lower-scoring boxes
    of the same class that overlap a kept box by more than the IoU
    threshold.

Non-goals:
    - No spatial indexing: candidate counts per frame are small, the
      pairwise O(n^2) scan is used as-is.
    - No top-k truncation.
"""

import math
from typing import List, Sequence

from fastestdet.box import Box


def suppress(boxes: Sequence[Box], iou_threshold: float) -> List[Box]:
    """Apply per-class greedy NMS.

    Args:
        boxes: Candidate boxes. Not modified.
        iou_threshold: A box is dropped when its IoU with a kept box of
                       the same class is strictly greater than this.

    Returns:
        Kept boxes, ordered by score (descending).

    Raises:
        ValueError: If any box has a NaN score.
    """
    if any(math.isnan(b.score) for b in boxes):
        raise ValueError("Cannot rank boxes with NaN scores.")

    ordered = sorted(boxes, key=lambda b: b.score, reverse=True)
    kept: List[Box] = []

    for candidate in ordered:
        overlaps = any(
            candidate.class_id == k.class_id and candidate.iou(k) > iou_threshold
            for k in kept
        )
        if not overlaps:
            kept.append(candidate)

    return kept
