"""
Input handling for the command-line pipeline.

Responsibility:
    Read raw network outputs that an external inference engine dumped
    to disk and yield them one image at a time as
    (frame_id, outputs, original_size) tuples.

Archive format:
    One ``.npz`` file per image. Each raw output tensor is stored under
    its model output name (e.g. "758", or "794" and "796"), and an
    ``original_size`` array holds the original image [width, height].

Non-goals:
    - No inference, decoding, or output writing.
    - No image reading of any kind.

Robustness:
    - Validates the source at initialization time.
    - Logs and skips unreadable or incomplete archives (never crashes
      the pipeline).
"""

import logging
import os
import zipfile
from pathlib import Path
from typing import Dict, Iterator, Tuple

import numpy as np

logger = logging.getLogger(__name__)

_ARCHIVE_EXTENSIONS = {".npz"}

ORIGINAL_SIZE_KEY = "original_size"

Frame = Tuple[int, Dict[str, np.ndarray], Tuple[int, int]]


class TensorSource:
    """Uniform iterator over dumped raw outputs.

    The source type is auto-detected at initialization:
        - File with .npz extension → single archive
        - Directory path → all archives in directory (sorted)

    Usage:
        source = TensorSource("dumps/")
        for frame_id, outputs, original_size in source:
            boxes = detector.detect(outputs, original_size)
    """

    def __init__(self, source: str) -> None:
        """Initialize the source and validate it.

        Args:
            source: Path to a .npz archive or a directory of archives.

        Raises:
            FileNotFoundError: If the source does not exist.
            ValueError: If the file type is unsupported or the directory
                        holds no archives.
        """
        source_str = str(source).strip()

        if os.path.isfile(source_str):
            ext = Path(source_str).suffix.lower()
            if ext not in _ARCHIVE_EXTENSIONS:
                raise ValueError(
                    f"Unrecognized file extension: '{ext}' for source '{source_str}'. "
                    f"Supported archives: {_ARCHIVE_EXTENSIONS}."
                )
            self._mode = "archive"
            self._paths = [source_str]
        elif os.path.isdir(source_str):
            self._mode = "directory"
            self._paths = sorted(
                str(p)
                for p in Path(source_str).iterdir()
                if p.suffix.lower() in _ARCHIVE_EXTENSIONS
            )
            if not self._paths:
                raise ValueError(
                    f"No archives found in directory: '{source_str}'. "
                    f"Supported extensions: {_ARCHIVE_EXTENSIONS}."
                )
            logger.info("Found %d archives in directory: %s", len(self._paths), source_str)
        else:
            raise FileNotFoundError(
                f"Input source not found: '{source_str}'. "
                f"Provide a .npz archive or a directory of archives."
            )

        logger.info("TensorSource initialized: mode=%s, source=%s", self._mode, source_str)

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[Frame]:
        """Yield (frame_id, outputs, original_size) per readable archive.

        frame_id is the archive's index in sorted order, so skipped
        archives leave gaps rather than shifting later ids.
        """
        for idx, path in enumerate(self._paths):
            try:
                with np.load(path) as archive:
                    arrays = {name: archive[name] for name in archive.files}
            except (OSError, ValueError, zipfile.BadZipFile) as e:
                logger.warning("Skipping unreadable archive (frame_id=%d): %s (%s)", idx, path, e)
                continue

            size = arrays.pop(ORIGINAL_SIZE_KEY, None)
            if size is None or np.size(size) != 2:
                logger.warning(
                    "Skipping archive without a [width, height] '%s' entry (frame_id=%d): %s",
                    ORIGINAL_SIZE_KEY, idx, path,
                )
                continue

            width, height = (int(v) for v in np.ravel(size))
            yield idx, arrays, (width, height)


def save_outputs(
    path: str,
    outputs: Dict[str, np.ndarray],
    original_size: Tuple[int, int],
) -> None:
    """Write one image's raw outputs in the archive format read above."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    np.savez(path, **outputs, **{ORIGINAL_SIZE_KEY: np.asarray(original_size, dtype=np.int64)})
    logger.debug("Saved raw outputs to %s", path)
