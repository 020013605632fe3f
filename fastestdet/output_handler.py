"""
Output handling for the command-line pipeline.

Responsibility:
    Route final boxes to configured output sinks: the log, a JSON file,
    or a CSV file. Supports multiple orthogonal outputs simultaneously.

Non-goals:
    - No decoding or suppression.
    - No input acquisition.
    - No drawing.
"""

import logging
from pathlib import Path
from typing import Dict, List, Set

from fastestdet.box import Box
from fastestdet.config import AppConfig, get_project_root
from fastestdet.serializer import save_csv, save_json

logger = logging.getLogger(__name__)


class OutputHandler:
    """Routes boxes to configured output sinks.

    Supports orthogonal outputs - multiple modes can be active simultaneously:
        - 'log': Log each box at INFO level.
        - 'save_json': Accumulate boxes, write JSON on finalize.
        - 'save_csv': Accumulate boxes, write CSV on finalize.

    Usage:
        handler = OutputHandler(config)
        handler.process_frame(frame_id, boxes)
        ...
        handler.finalize()  # Flush any buffered output
    """

    def __init__(self, config: AppConfig) -> None:
        """Initialize the output handler.

        Args:
            config: Application configuration (output mode, paths, labels).
        """
        self._config = config

        self._modes: Set[str] = set(m.strip() for m in config.output.mode.split(","))
        self._boxes_buffer: Dict[int, List[Box]] = {}

        save_path = Path(config.output.save_path)
        if not save_path.is_absolute():
            save_path = get_project_root() / save_path
        self._save_path = save_path

        if self._modes & {"save_json", "save_csv"}:
            self._save_path.mkdir(parents=True, exist_ok=True)

        logger.info("OutputHandler initialized: modes=%s, save_path=%s",
                    self._modes, self._save_path)

    @property
    def save_path(self) -> Path:
        return self._save_path

    def process_frame(self, frame_id: int, boxes: List[Box]) -> None:
        """Process a single frame's boxes through the output pipeline."""
        if "log" in self._modes:
            self._handle_log(frame_id, boxes)

        if "save_json" in self._modes or "save_csv" in self._modes:
            self._boxes_buffer[frame_id] = boxes

    def _handle_log(self, frame_id: int, boxes: List[Box]) -> None:
        names = self._config.model.class_names
        logger.info("Frame %d: %d box(es)", frame_id, len(boxes))
        for box in boxes:
            logger.info(
                "  %s %.3f [%d, %d, %d, %d]",
                box.label(names), box.score, box.x1, box.y1, box.x2, box.y2,
            )

    def finalize(self) -> None:
        """Flush buffered output.

        Must be called after all frames have been processed.
        """
        names = self._config.model.class_names

        if "save_json" in self._modes and self._boxes_buffer:
            output_file = str(self._save_path / "detections.json")
            save_json(self._boxes_buffer, output_file, names)

        if "save_csv" in self._modes and self._boxes_buffer:
            output_file = str(self._save_path / "detections.csv")
            save_csv(self._boxes_buffer, output_file, names)

        self._boxes_buffer.clear()
        logger.info("OutputHandler finalized.")
