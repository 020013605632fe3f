"""
FastestDet post-processing CLI entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, wire together
    the detector and I/O handlers, and run the processing loop over raw
    network outputs dumped by an external inference engine.

Usage:
    python main.py --source dumps/                      # Directory of .npz archives
    python main.py --source frame.npz --architecture yolo-fastest
    python main.py --source dumps/ --output-mode save_json,save_csv
    python main.py --config config.yaml

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import dataclasses
import logging
import sys
import time
from typing import Optional, Sequence

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

from fastestdet.config import AppConfig, load_config, validate_config
from fastestdet.detector import Detector
from fastestdet.errors import DecodeError
from fastestdet.input_handler import TensorSource
from fastestdet.output_handler import OutputHandler


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="FastestDet post-processing — decode raw outputs into boxes",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--source",
        type=str,
        required=True,
        help="Path to a .npz archive of raw outputs, or a directory of archives.",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file.",
    )
    parser.add_argument(
        "--architecture",
        type=str,
        choices=["fastestdet", "yolo-fastest"],
        help="Decoder variant. Overrides config.",
    )
    parser.add_argument(
        "--confidence",
        type=float,
        help="Detection confidence threshold (0.0 - 1.0). Overrides config.",
    )
    parser.add_argument(
        "--nms",
        type=float,
        help="IoU suppression threshold (0.0 - 1.0). Overrides config.",
    )
    parser.add_argument(
        "--output-mode",
        type=str,
        help="Output mode(s), comma-separated: log, save_json, save_csv. "
             "Overrides config.",
    )
    parser.add_argument(
        "--output-path",
        type=str,
        help="Directory for output artifacts. Overrides config.",
    )

    return parser.parse_args(argv)


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a copy of config with CLI arguments applied, re-validated."""
    model = config.model
    detection = config.detection
    output = config.output

    if args.architecture is not None:
        model = dataclasses.replace(model, architecture=args.architecture, output_names=())

    if args.confidence is not None:
        detection = dataclasses.replace(detection, confidence_threshold=args.confidence)

    if args.nms is not None:
        detection = dataclasses.replace(detection, nms_threshold=args.nms)

    if args.output_mode is not None:
        output = dataclasses.replace(output, mode=args.output_mode)

    if args.output_path is not None:
        output = dataclasses.replace(output, save_path=args.output_path)

    return validate_config(AppConfig(model=model, detection=detection, output=output))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main execution loop."""
    args = parse_args(argv)

    # 1. Load Configuration (CLI args > ENV > YAML > Defaults)
    try:
        config = apply_cli_overrides(load_config(args.config), args)
        logger.info("Configuration active for this run.")
    except (FileNotFoundError, ValueError) as e:
        logger.error("Configuration error: %s", e)
        return 1

    # 2. Initialize Components
    try:
        detector = Detector(config)
        source = TensorSource(args.source)
        output_handler = OutputHandler(config)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Initialization failed: %s", e)
        return 1

    # 3. Processing Loop
    frame_count = 0
    box_count = 0
    start_time = time.perf_counter()

    try:
        for frame_id, outputs, original_size in source:
            boxes = detector.detect(outputs, original_size)
            frame_count += 1
            box_count += len(boxes)
            output_handler.process_frame(frame_id, boxes)

    except DecodeError as e:
        logger.error("Raw outputs do not match the %s layout: %s",
                     config.model.architecture, e)
        return 1
    except ValueError as e:
        logger.error("Invalid frame input: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
    finally:
        # 4. Cleanup
        elapsed = time.perf_counter() - start_time
        output_handler.finalize()

        logger.info(
            "Processing finished. Frames: %d. Boxes: %d. Elapsed: %.3fs.",
            frame_count, box_count, elapsed,
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
