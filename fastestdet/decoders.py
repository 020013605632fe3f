"""
Tensor decoding for the FastestDet family of detectors.

Responsibility:
    Turn the raw output tensor(s) of a detection network into candidate
    Box objects in original-image pixel coordinates, keeping only
    candidates whose score exceeds the confidence threshold.

Variants:
    - SingleGridDecoder (FastestDet): one (5 + C, H, W) channel-major
      tensor. Channel 0 is objectness, channels 1-4 are box regression,
      channels 5.. are class scores. Score is max_class^0.4 * obj^0.6.
    - AnchorDecoder (Yolo-Fastest v2): two (H, W, 15 + C) tensors at
      different resolutions. Each cell packs 3 anchors x 4 box values,
      then 3 objectness values, then C shared class scores. Score is
      obj * class.

Non-goals:
    - No model loading or inference.
    - No suppression (see fastestdet.nms).

Hard-coded:
    - Channel ordering of both layouts and both score formulas. They are
      contracts of the upstream model exports and cannot be discovered
      from the tensor itself.

Shapes are validated once at entry. A tensor that does not match the
layout raises ShapeMismatch before any element is read. NaN scores are
never emitted.
"""

import math
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np

from fastestdet.box import Box
from fastestdet.errors import InvalidGeometry, ShapeMismatch

# ---------------------------------------------------------------------------
# Layout constants
# ---------------------------------------------------------------------------

# FastestDet: objectness, 4 regression channels, then class channels.
OBJ_CHANNEL = 0
OFFSET_CHANNELS = (1, 2, 3, 4)
CLASS_CHANNEL_START = 5

# Calibration exponents of the FastestDet score.
CLASS_SCORE_EXPONENT = 0.4
OBJ_SCORE_EXPONENT = 0.6

# Yolo-Fastest v2
NUM_ANCHORS = 3
NUM_SCALES = 2
BOX_VALUES = 4

# (w, h) per anchor, scale-major then anchor-major.
YOLO_FASTEST_ANCHORS: Tuple[float, ...] = (
    12.64, 19.39, 37.88, 51.48, 55.71, 138.31,
    126.91, 78.23, 131.57, 214.55, 279.92, 258.87,
)

ARCHITECTURES = ("fastestdet", "yolo-fastest")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sigmoid(x: np.ndarray) -> np.ndarray:
    with np.errstate(over="ignore"):
        return 1.0 / (1.0 + np.exp(-x))


def _check_num_classes(num_classes: int) -> None:
    if isinstance(num_classes, bool) or not isinstance(num_classes, (int, np.integer)):
        raise ValueError(f"num_classes must be an integer, got {num_classes!r}.")
    if num_classes < 1:
        raise ValueError(f"num_classes must be >= 1, got {num_classes}.")


def _check_size(size: Tuple[int, int], name: str) -> Tuple[int, int]:
    if len(size) != 2:
        raise ValueError(f"{name} must be a (width, height) pair, got {size!r}.")
    width, height = int(size[0]), int(size[1])
    if width <= 0 or height <= 0:
        raise ValueError(f"{name} dimensions must be positive, got {size!r}.")
    return width, height


def _strip_batch(arr: np.ndarray, rank: int) -> np.ndarray:
    """Drop a leading batch dimension of 1 so the array has ``rank`` dims."""
    if arr.ndim == rank + 1:
        if arr.shape[0] != 1:
            raise ShapeMismatch(
                f"Batch > 1 is not supported (got shape {arr.shape}). "
                f"Pass one image at a time."
            )
        return arr[0]
    return arr


def _as_channel_major(
    tensor: np.ndarray,
    channels: int,
    grid_height: int,
    grid_width: int,
) -> np.ndarray:
    """Validate and view a tensor as (channels, grid_height, grid_width)."""
    if grid_height <= 0 or grid_width <= 0:
        raise ShapeMismatch(
            f"Grid dimensions must be positive, got {grid_height}x{grid_width}."
        )

    arr = _strip_batch(np.asarray(tensor, dtype=np.float32), 3)
    expected = (channels, grid_height, grid_width)

    if arr.ndim == 1:
        if arr.size != channels * grid_height * grid_width:
            raise ShapeMismatch(
                f"Expected {channels * grid_height * grid_width} values "
                f"for layout {expected}, got {arr.size}."
            )
        return arr.reshape(expected)

    if arr.shape != expected:
        raise ShapeMismatch(f"Expected tensor shape {expected}, got {arr.shape}.")
    return arr


def _as_cell_major(tensor: np.ndarray, values_per_cell: int) -> np.ndarray:
    """Validate and view a packed tensor as (grid_h, grid_w, values_per_cell)."""
    arr = _strip_batch(np.asarray(tensor, dtype=np.float32), 3)
    if arr.ndim != 3:
        raise ShapeMismatch(
            f"Expected a 3-dimensional (H, W, {values_per_cell}) tensor, "
            f"got shape {arr.shape}."
        )
    grid_h, grid_w, per_cell = arr.shape
    if per_cell != values_per_cell:
        raise ShapeMismatch(
            f"Expected {values_per_cell} values per grid cell "
            f"({NUM_ANCHORS} anchors x {BOX_VALUES + 1} + classes), got {per_cell}."
        )
    if grid_h == 0 or grid_w == 0:
        raise ShapeMismatch(f"Empty grid in tensor of shape {arr.shape}.")
    return arr


def _grid_stride(model_input_size: Tuple[int, int], grid_h: int, grid_w: int) -> int:
    input_w, input_h = model_input_size
    if input_w % grid_w or input_h % grid_h:
        raise InvalidGeometry(
            f"Model input {input_w}x{input_h} is not a multiple of grid {grid_w}x{grid_h}."
        )
    stride_x, stride_y = input_w // grid_w, input_h // grid_h
    if stride_x != stride_y:
        raise InvalidGeometry(
            f"Inconsistent stride for grid {grid_w}x{grid_h}: "
            f"x={stride_x}, y={stride_y}."
        )
    return stride_x


def _make_box(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    score: float,
    class_id: int,
) -> Optional[Box]:
    """Truncate corners toward zero. Non-finite geometry yields no box."""
    if not all(math.isfinite(v) for v in (x1, y1, x2, y2)):
        return None
    return Box(
        x1=int(x1),
        y1=int(y1),
        x2=int(x2),
        y2=int(y2),
        score=float(score),
        class_id=int(class_id),
    )


# ---------------------------------------------------------------------------
# FastestDet
# ---------------------------------------------------------------------------

def decode_single_grid(
    tensor: np.ndarray,
    grid_height: int,
    grid_width: int,
    num_classes: int,
    original_size: Tuple[int, int],
    threshold: float,
) -> List[Box]:
    """Decode a FastestDet output tensor.

    Args:
        tensor: Flat buffer of (5 + num_classes) * H * W floats, or an
                array shaped (5 + num_classes, H, W), optionally with a
                leading batch dimension of 1.
        grid_height: Feature map height H.
        grid_width: Feature map width W.
        num_classes: Number of class channels.
        original_size: (width, height) of the original image.
        threshold: Calibrated scores must be strictly greater than this.

    Returns:
        Candidate boxes in row-major cell order.

    Raises:
        ShapeMismatch: If the tensor does not match the layout.
        ValueError: If num_classes or original_size is invalid.
    """
    _check_num_classes(num_classes)
    img_w, img_h = _check_size(original_size, "original_size")
    fmap = _as_channel_major(tensor, CLASS_CHANNEL_START + num_classes, grid_height, grid_width)

    obj = fmap[OBJ_CHANNEL]
    class_scores = fmap[CLASS_CHANNEL_START:]

    # Running max starts at 0 with strict '>': non-positive and NaN scores
    # never win, ties keep the lowest class index.
    candidates = np.where(class_scores > 0, class_scores, 0.0)
    class_idx = np.argmax(candidates, axis=0)
    max_score = np.take_along_axis(candidates, class_idx[None, ...], axis=0)[0]

    with np.errstate(invalid="ignore"):
        scores = max_score ** CLASS_SCORE_EXPONENT * obj ** OBJ_SCORE_EXPONENT
        keep = np.isfinite(scores) & (scores > threshold)

    rows, cols = np.nonzero(keep)
    x_chan, y_chan, w_chan, h_chan = OFFSET_CHANNELS
    x_offset = np.tanh(fmap[x_chan, rows, cols])
    y_offset = np.tanh(fmap[y_chan, rows, cols])
    box_w = _sigmoid(fmap[w_chan, rows, cols])
    box_h = _sigmoid(fmap[h_chan, rows, cols])

    cx = (cols + x_offset) / grid_width
    cy = (rows + y_offset) / grid_height

    boxes: List[Box] = []
    for i, (row, col) in enumerate(zip(rows, cols)):
        box = _make_box(
            x1=float((cx[i] - 0.5 * box_w[i]) * img_w),
            y1=float((cy[i] - 0.5 * box_h[i]) * img_h),
            x2=float((cx[i] + 0.5 * box_w[i]) * img_w),
            y2=float((cy[i] + 0.5 * box_h[i]) * img_h),
            score=scores[row, col],
            class_id=class_idx[row, col],
        )
        if box is not None:
            boxes.append(box)
    return boxes


# ---------------------------------------------------------------------------
# Yolo-Fastest v2
# ---------------------------------------------------------------------------

def _check_anchor_table(anchor_table: Sequence[float]) -> Tuple[float, ...]:
    table = tuple(float(a) for a in anchor_table)
    expected = NUM_SCALES * NUM_ANCHORS * 2
    if len(table) != expected:
        raise ValueError(
            f"Anchor table must hold {expected} values "
            f"({NUM_SCALES} scales x {NUM_ANCHORS} anchors x (w, h)), got {len(table)}."
        )
    return table


def _decode_scale(
    fmap: np.ndarray,
    stride: int,
    anchors: Tuple[float, ...],
    scale: Tuple[float, float],
    threshold: float,
) -> List[Box]:
    """Decode one (H, W, 15 + C) feature map with its slice of the anchor table."""
    obj_start = BOX_VALUES * NUM_ANCHORS
    class_start = obj_start + NUM_ANCHORS
    obj = fmap[..., obj_start:class_start]  # (H, W, A)
    class_scores = fmap[..., class_start:]  # (H, W, C)

    with np.errstate(invalid="ignore"):
        combined = obj[..., :, None] * class_scores[..., None, :]  # (H, W, A, C)
    combined = np.where(np.isnan(combined), -np.inf, combined)

    # Ties resolve to the highest class index.
    num_classes = combined.shape[-1]
    class_idx = num_classes - 1 - np.argmax(combined[..., ::-1], axis=-1)
    best = np.take_along_axis(combined, class_idx[..., None], axis=-1)[..., 0]
    keep = np.isfinite(best) & (best > threshold)

    scale_w, scale_h = scale
    boxes: List[Box] = []
    for row, col, b in zip(*np.nonzero(keep)):
        values = fmap[row, col]
        bcx = (float(values[b * 4 + 0]) * 2 - 0.5 + col) * stride
        bcy = (float(values[b * 4 + 1]) * 2 - 0.5 + row) * stride
        bw = (float(values[b * 4 + 2]) * 2) ** 2 * anchors[b * 2 + 0]
        bh = (float(values[b * 4 + 3]) * 2) ** 2 * anchors[b * 2 + 1]
        box = _make_box(
            x1=(bcx - 0.5 * bw) * scale_w,
            y1=(bcy - 0.5 * bh) * scale_h,
            x2=(bcx + 0.5 * bw) * scale_w,
            y2=(bcy + 0.5 * bh) * scale_h,
            score=best[row, col, b],
            class_id=class_idx[row, col, b],
        )
        if box is not None:
            boxes.append(box)
    return boxes


def decode_multi_scale(
    tensors: Sequence[np.ndarray],
    model_input_size: Tuple[int, int],
    original_size: Tuple[int, int],
    num_classes: int,
    anchor_table: Sequence[float],
    threshold: float,
) -> List[Box]:
    """Decode the two Yolo-Fastest v2 output tensors.

    Each tensor's grid size is read from its own shape (H, W, 15 + C).
    Candidates of scale 0 come first, then scale 1; within a scale the
    order is row, column, anchor.

    Args:
        tensors: Exactly two packed output tensors.
        model_input_size: (width, height) of the network input.
        original_size: (width, height) of the original image.
        num_classes: Number of class scores per cell.
        anchor_table: 12 anchor sizes, scale-major, anchor-major, (w, h).
        threshold: obj * class must be strictly greater than this.

    Raises:
        ShapeMismatch: If the tensor count or any tensor shape is wrong.
        InvalidGeometry: If a grid does not evenly divide the model input.
        ValueError: If sizes, num_classes or the anchor table are invalid.
    """
    _check_num_classes(num_classes)
    input_size = _check_size(model_input_size, "model_input_size")
    img_w, img_h = _check_size(original_size, "original_size")
    table = _check_anchor_table(anchor_table)

    if len(tensors) != NUM_SCALES:
        raise ShapeMismatch(f"Expected {NUM_SCALES} output tensors, got {len(tensors)}.")

    values_per_cell = (BOX_VALUES + 1) * NUM_ANCHORS + num_classes
    fmaps = [_as_cell_major(t, values_per_cell) for t in tensors]

    scale = (img_w / input_size[0], img_h / input_size[1])
    per_scale = NUM_ANCHORS * 2
    boxes: List[Box] = []
    for i, fmap in enumerate(fmaps):
        stride = _grid_stride(input_size, fmap.shape[0], fmap.shape[1])
        anchors = table[i * per_scale:(i + 1) * per_scale]
        boxes.extend(_decode_scale(fmap, stride, anchors, scale, threshold))
    return boxes


# ---------------------------------------------------------------------------
# Decode strategies
# ---------------------------------------------------------------------------

class Decoder(ABC):
    """Decode strategy shared by the supported model architectures.

    Implementations hold only immutable configuration, so one instance
    can be used from several threads on independent inputs.
    """

    name: str = ""
    num_outputs: int = 1

    def __init__(self, num_classes: int) -> None:
        _check_num_classes(num_classes)
        self._num_classes = int(num_classes)

    @property
    def num_classes(self) -> int:
        return self._num_classes

    @abstractmethod
    def decode(
        self,
        outputs: Sequence[np.ndarray],
        original_size: Tuple[int, int],
        threshold: float,
    ) -> List[Box]:
        """Decode raw network outputs into candidate boxes."""

    def _check_outputs(self, outputs: Sequence[np.ndarray]) -> None:
        if len(outputs) != self.num_outputs:
            raise ShapeMismatch(
                f"{self.name} expects {self.num_outputs} output tensor(s), got {len(outputs)}."
            )


class SingleGridDecoder(Decoder):
    """FastestDet: one anchor-free (5 + C, H, W) output tensor."""

    name = "fastestdet"
    num_outputs = 1

    def decode(
        self,
        outputs: Sequence[np.ndarray],
        original_size: Tuple[int, int],
        threshold: float,
    ) -> List[Box]:
        self._check_outputs(outputs)
        arr = _strip_batch(np.asarray(outputs[0], dtype=np.float32), 3)
        if arr.ndim != 3:
            raise ShapeMismatch(
                f"Expected a 3-dimensional (C, H, W) tensor, got shape {arr.shape}."
            )
        _, grid_height, grid_width = arr.shape
        return decode_single_grid(
            arr,
            grid_height=grid_height,
            grid_width=grid_width,
            num_classes=self._num_classes,
            original_size=original_size,
            threshold=threshold,
        )


class AnchorDecoder(Decoder):
    """Yolo-Fastest v2: two anchor-based outputs at different strides."""

    name = "yolo-fastest"
    num_outputs = NUM_SCALES

    def __init__(
        self,
        num_classes: int,
        model_input_size: Tuple[int, int] = (352, 352),
        anchor_table: Sequence[float] = YOLO_FASTEST_ANCHORS,
    ) -> None:
        super().__init__(num_classes)
        self._model_input_size = _check_size(model_input_size, "model_input_size")
        self._anchor_table = _check_anchor_table(anchor_table)

    @property
    def model_input_size(self) -> Tuple[int, int]:
        return self._model_input_size

    @property
    def anchor_table(self) -> Tuple[float, ...]:
        return self._anchor_table

    def decode(
        self,
        outputs: Sequence[np.ndarray],
        original_size: Tuple[int, int],
        threshold: float,
    ) -> List[Box]:
        self._check_outputs(outputs)
        return decode_multi_scale(
            outputs,
            model_input_size=self._model_input_size,
            original_size=original_size,
            num_classes=self._num_classes,
            anchor_table=self._anchor_table,
            threshold=threshold,
        )


def build_decoder(model_config) -> Decoder:
    """Create the decode strategy selected by ``model_config.architecture``.

    Args:
        model_config: A ModelConfig (architecture, num_classes,
                      input_size, anchors).

    Raises:
        ValueError: If the architecture is unknown.
    """
    architecture = model_config.architecture
    if architecture == "fastestdet":
        return SingleGridDecoder(model_config.num_classes)
    if architecture == "yolo-fastest":
        return AnchorDecoder(
            model_config.num_classes,
            model_input_size=model_config.input_size,
            anchor_table=model_config.anchors,
        )
    raise ValueError(
        f"Unknown architecture: '{architecture}'. Must be one of {ARCHITECTURES}."
    )
