"""
Detector — the single public entry point for post-processing.

Wires the configured decode strategy and non-maximum suppression
together: raw output tensors in, final boxes out.

Public contract:
    Detector.detect(outputs, original_size) -> list[Box]

Constraints:
    - Outputs are the raw tensors produced by an external inference
      engine for one image.
    - The method is stateless per call and deterministic. The detector
      holds only immutable configuration, so concurrent calls on
      independent inputs are safe.

Non-goals:
    - No model loading or inference.
    - No image decoding, resizing, or drawing.
    - No tracking or temporal state.
"""

import logging
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from fastestdet.box import Box
from fastestdet.config import AppConfig, load_config, resolve_output_names, validate_config
from fastestdet.decoders import Decoder, build_decoder
from fastestdet.errors import ShapeMismatch
from fastestdet.nms import suppress

logger = logging.getLogger(__name__)

RawOutputs = Union[np.ndarray, Sequence[np.ndarray], Mapping[str, np.ndarray]]


class Detector:
    """Post-processor for FastestDet and Yolo-Fastest v2 outputs.

    Usage:
        detector = Detector()                            # Uses safe defaults
        detector = Detector(config=my_config)             # Custom config
        boxes = detector.detect(outputs, (width, height))

    The decode strategy is built once in the constructor from
    ``config.model.architecture``.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        """Initialize the detector.

        Args:
            config: Application configuration. If None, safe defaults
                    are used (no config file required).

        Raises:
            ValueError: If configuration values are invalid.
        """
        if config is None:
            config = load_config()
        else:
            validate_config(config)

        self._config = config
        self._decoder: Decoder = build_decoder(config.model)
        self._output_names: Tuple[str, ...] = resolve_output_names(config.model)

        logger.info(
            "Detector initialized (architecture=%s, classes=%d, "
            "confidence_threshold=%.2f, nms_threshold=%.2f)",
            config.model.architecture,
            config.model.num_classes,
            config.detection.confidence_threshold,
            config.detection.nms_threshold,
        )

    def detect(self, outputs: RawOutputs, original_size: Tuple[int, int]) -> List[Box]:
        """Decode and suppress the raw outputs of one image.

        Args:
            outputs: A single tensor, a sequence of tensors in decode
                     order, or a mapping of output name to tensor.
            original_size: (width, height) of the original image.

        Returns:
            Kept boxes ordered by score (descending). Empty when nothing
            passes the confidence threshold.

        Raises:
            ShapeMismatch: If the outputs do not match the model layout.
            InvalidGeometry: If a grid does not divide the model input.
            ValueError: If original_size is invalid.
        """
        self._validate_size(original_size)
        tensors = self._select_outputs(outputs)

        candidates = self._decoder.decode(
            tensors,
            original_size=original_size,
            threshold=self._config.detection.confidence_threshold,
        )
        boxes = suppress(candidates, self._config.detection.nms_threshold)

        logger.debug(
            "Decoded %d candidate(s), kept %d after NMS.", len(candidates), len(boxes)
        )
        return boxes

    @property
    def config(self) -> AppConfig:
        """Return the active configuration (read-only)."""
        return self._config

    @property
    def decoder(self) -> Decoder:
        return self._decoder

    @property
    def output_names(self) -> Tuple[str, ...]:
        return self._output_names

    @property
    def class_names(self) -> Tuple[str, ...]:
        return self._config.model.class_names

    def label(self, box: Box) -> str:
        """Resolve a box's class index to its name, or the index as text."""
        return box.label(self._config.model.class_names)

    def _select_outputs(self, outputs: RawOutputs) -> List[np.ndarray]:
        """Normalize the accepted output containers to a list in decode order."""
        if isinstance(outputs, Mapping):
            missing = [name for name in self._output_names if name not in outputs]
            if missing:
                raise ShapeMismatch(
                    f"Missing model output(s) {missing}; "
                    f"got {sorted(outputs.keys())}."
                )
            return [outputs[name] for name in self._output_names]

        if isinstance(outputs, np.ndarray):
            return [outputs]

        return list(outputs)

    @staticmethod
    def _validate_size(original_size: Tuple[int, int]) -> None:
        """Validate the original image size.

        Raises:
            ValueError: If the size is not two positive integers.
        """
        if len(original_size) != 2:
            raise ValueError(
                f"Expected original_size as (width, height), got {original_size!r}."
            )

        if any(int(d) <= 0 for d in original_size):
            raise ValueError(
                f"original_size dimensions must be positive, got {original_size!r}."
            )
