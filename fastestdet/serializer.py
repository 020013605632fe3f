"""
Serialization for the post-processing pipeline.

Responsibility:
    Export boxes to structured file formats (JSON, CSV) for downstream
    consumption, and read the JSON format back.

Non-goals:
    - No rendering, display, or decoding logic.
    - No streaming output — writes complete files on finalize.

All six box fields are written without rounding so a JSON round trip
reproduces the boxes exactly.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Dict, List, Sequence

from fastestdet.box import Box

logger = logging.getLogger(__name__)


def save_json(
    boxes_by_frame: Dict[int, List[Box]],
    output_path: str,
    class_names: Sequence[str] = (),
) -> None:
    """Export all boxes to a JSON file.

    Output schema:
        {
            "frames": [
                {
                    "frame_id": 0,
                    "detections": [
                        {"x1": ..., "y1": ..., "x2": ..., "y2": ...,
                         "score": ..., "class": ...}
                    ]
                }
            ],
            "total_frames": N,
            "total_detections": M
        }

    Args:
        boxes_by_frame: Mapping of frame_id → list of Box objects.
        output_path: Path to the output JSON file.
        class_names: Optional labels; adds a "label" key per detection.

    Raises:
        OSError: If the output path is not writable.
    """
    _ensure_parent_dir(output_path)

    frames = []
    total_detections = 0

    for frame_id in sorted(boxes_by_frame.keys()):
        boxes = boxes_by_frame[frame_id]
        total_detections += len(boxes)
        frames.append({
            "frame_id": frame_id,
            "detections": [b.to_dict(class_names) for b in boxes],
        })

    payload = {
        "frames": frames,
        "total_frames": len(frames),
        "total_detections": total_detections,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info(
        "JSON output saved: %s (%d frames, %d detections)",
        output_path, len(frames), total_detections,
    )


def load_json(input_path: str) -> Dict[int, List[Box]]:
    """Read boxes written by save_json.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not follow the save_json schema.
    """
    path = Path(input_path)
    if not path.is_file():
        raise FileNotFoundError(f"Detections file not found: {path}")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid detections JSON: {path}") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("frames"), list):
        raise ValueError(f"Detections JSON must hold a 'frames' list: {path}")

    boxes_by_frame: Dict[int, List[Box]] = {}
    for index, frame in enumerate(payload["frames"]):
        try:
            boxes_by_frame[int(frame["frame_id"])] = [
                Box.from_dict(d) for d in frame.get("detections", [])
            ]
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise ValueError(f"Malformed frame {index} in {path}: {exc!r}") from exc
    return boxes_by_frame


def save_csv(
    boxes_by_frame: Dict[int, List[Box]],
    output_path: str,
    class_names: Sequence[str] = (),
) -> None:
    """Export all boxes to a CSV file.

    Columns: frame_id, x1, y1, x2, y2, score, class (, label)

    Args:
        boxes_by_frame: Mapping of frame_id → list of Box objects.
        output_path: Path to the output CSV file.
        class_names: Optional labels; adds a "label" column.

    Raises:
        OSError: If the output path is not writable.
    """
    _ensure_parent_dir(output_path)

    fieldnames = ["frame_id", "x1", "y1", "x2", "y2", "score", "class"]
    if class_names:
        fieldnames.append("label")

    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, restval="")
        writer.writeheader()

        total = 0
        for frame_id in sorted(boxes_by_frame.keys()):
            for box in boxes_by_frame[frame_id]:
                writer.writerow({
                    "frame_id": frame_id,
                    **box.to_dict(class_names),
                })
                total += 1

    logger.info("CSV output saved: %s (%d rows)", output_path, total)


def _ensure_parent_dir(path: str) -> None:
    """Create parent directories if they don't exist."""
    parent = Path(path).parent
    parent.mkdir(parents=True, exist_ok=True)
