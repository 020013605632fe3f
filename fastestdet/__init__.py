"""
FastestDet — post-processing for FastestDet and Yolo-Fastest v2 outputs.

Public API:
    - Detector: Decode + suppress raw outputs of one image.
    - Box: Value type for a scored, labeled bounding box.
    - SingleGridDecoder, AnchorDecoder, build_decoder: Decode strategies.
    - decode_single_grid, decode_multi_scale: Functional decoders.
    - suppress: Per-class greedy non-maximum suppression.
    - ShapeMismatch, InvalidGeometry, DecodeError: Typed failures.

Usage:
    from fastestdet import Detector, Box

    detector = Detector()
    boxes = detector.detect(outputs, (width, height))
"""

from fastestdet.box import Box, iou
from fastestdet.decoders import (
    YOLO_FASTEST_ANCHORS,
    AnchorDecoder,
    Decoder,
    SingleGridDecoder,
    build_decoder,
    decode_multi_scale,
    decode_single_grid,
)
from fastestdet.detector import Detector
from fastestdet.errors import DecodeError, InvalidGeometry, ShapeMismatch
from fastestdet.nms import suppress

__all__ = [
    "Detector",
    "Box",
    "iou",
    "Decoder",
    "SingleGridDecoder",
    "AnchorDecoder",
    "build_decoder",
    "decode_single_grid",
    "decode_multi_scale",
    "YOLO_FASTEST_ANCHORS",
    "suppress",
    "DecodeError",
    "ShapeMismatch",
    "InvalidGeometry",
]
