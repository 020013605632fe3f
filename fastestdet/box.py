"""
Box value type.

This module defines the Box dataclass — the single output type produced
by the decoders and consumed by suppression. It is a frozen, serializable
container plus the overlap geometry that suppression needs.

Non-goals:
    - No rendering logic.
    - No file I/O.
    - No clamping or validation of coordinates (malformed boxes are
      represented as-is; consumers assume x1 <= x2 and y1 <= y2).
"""

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True, slots=True)
class Box:
    """A single detected object with bounding box, score and class index.

    Attributes:
        x1: Left x coordinate (original image pixels).
        y1: Top y coordinate (original image pixels).
        x2: Right x coordinate (original image pixels).
        y2: Bottom y coordinate (original image pixels).
        score: Calibrated confidence used for thresholding and ranking.
        class_id: Index into an externally supplied label list.
    """

    x1: int
    y1: int
    x2: int
    y2: int
    score: float
    class_id: int

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    @property
    def area(self) -> int:
        """Box area in pixels. Negative for inverted boxes."""
        return self.width * self.height

    def intersection_area(self, other: "Box") -> int:
        """Overlap area with another box, zero when they do not overlap."""
        inter_w = max(0, min(self.x2, other.x2) - max(self.x1, other.x1))
        inter_h = max(0, min(self.y2, other.y2) - max(self.y1, other.y1))
        return inter_w * inter_h

    def iou(self, other: "Box") -> float:
        """Intersection over union with another box.

        A zero union (degenerate boxes) yields 0.0 instead of dividing
        by zero.
        """
        intersection = self.intersection_area(other)
        union = self.area + other.area - intersection
        if union == 0:
            return 0.0
        return intersection / union

    def to_dict(self, class_names: Optional[Sequence[str]] = None) -> dict:
        """Return a plain dict suitable for JSON serialization.

        The score is written unrounded so a round trip is lossless. When
        ``class_names`` covers the class index, a ``label`` key is added.
        """
        payload = {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "score": self.score,
            "class": self.class_id,
        }
        name = self.class_name(class_names)
        if name is not None:
            payload["label"] = name
        return payload

    def class_name(self, class_names: Optional[Sequence[str]]) -> Optional[str]:
        """Name of this box's class, or None when class_names does not cover it."""
        if class_names and 0 <= self.class_id < len(class_names):
            return class_names[self.class_id]
        return None

    def label(self, class_names: Optional[Sequence[str]] = None) -> str:
        """Display label: the class name if known, else the index as text."""
        name = self.class_name(class_names)
        return name if name is not None else str(self.class_id)

    @classmethod
    def from_dict(cls, payload: dict) -> "Box":
        """Build a Box from the mapping produced by ``to_dict``.

        Raises:
            ValueError: If a required key is missing.
        """
        missing = [k for k in ("x1", "y1", "x2", "y2", "score", "class") if k not in payload]
        if missing:
            raise ValueError(f"Box payload is missing keys: {missing}")
        return cls(
            x1=int(payload["x1"]),
            y1=int(payload["y1"]),
            x2=int(payload["x2"]),
            y2=int(payload["y2"]),
            score=float(payload["score"]),
            class_id=int(payload["class"]),
        )


def iou(a: Box, b: Box) -> float:
    """Intersection over union of two boxes (symmetric)."""
    return a.iou(b)
