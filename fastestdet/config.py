"""
Configuration management for the FastestDet post-processing library.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Defaults

Design constraints:
    - The system MUST run with zero configuration (safe defaults only).
    - Missing or invalid values fail early and loudly.
    - No decoding, I/O beyond the config file, or model execution here.

Non-goals:
    - No dynamic reloading.
    - No database-backed or remote configuration.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import yaml

from fastestdet.decoders import ARCHITECTURES, YOLO_FASTEST_ANCHORS

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project root resolution
# ---------------------------------------------------------------------------
# Resolved relative to this file's location: fastestdet/config.py -> repo root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def get_project_root() -> Path:
    """Return the resolved project root directory."""
    return _PROJECT_ROOT


# Output tensor names of the reference ncnn exports.
DEFAULT_OUTPUT_NAMES = {
    "fastestdet": ("758",),
    "yolo-fastest": ("794", "796"),
}


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelConfig:
    """Model contract configuration.

    Attributes:
        architecture: Decoder variant — 'fastestdet' or 'yolo-fastest'.
        input_size: Network input (width, height) in pixels.
        num_classes: Number of class scores the model emits.
        class_names: Optional labels, one per class index.
        anchors: Yolo-Fastest anchor table, 2 scales x 3 anchors x (w, h).
        output_names: Names of the raw output tensors, in decode order.
                      Empty means the architecture default.
    """

    architecture: str = "fastestdet"
    input_size: Tuple[int, int] = (352, 352)
    num_classes: int = 80
    class_names: Tuple[str, ...] = ()
    anchors: Tuple[float, ...] = YOLO_FASTEST_ANCHORS
    output_names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DetectionConfig:
    """Detection thresholds.

    Attributes:
        confidence_threshold: Minimum score (exclusive) to keep a candidate.
        nms_threshold: IoU above which a same-class box is suppressed.
    """

    confidence_threshold: float = 0.5
    nms_threshold: float = 0.45


@dataclass(frozen=True)
class OutputConfig:
    """Output behavior configuration.

    Attributes:
        mode: Output mode(s), comma-separated: 'log', 'save_json', 'save_csv'.
        save_path: Directory where output artifacts are written.
    """

    mode: str = "log"
    save_path: str = "output/"


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration.

    Aggregates all sub-configurations into a single, frozen object.
    """

    model: ModelConfig = field(default_factory=ModelConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def resolve_output_names(config: ModelConfig) -> Tuple[str, ...]:
    """Return the configured output names or the architecture default."""
    if config.output_names:
        return config.output_names
    return DEFAULT_OUTPUT_NAMES[config.architecture]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_VALID_OUTPUT_MODES = {"log", "save_json", "save_csv"}


def _validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""

    if config.model.architecture not in ARCHITECTURES:
        raise ValueError(
            f"Invalid model.architecture: '{config.model.architecture}'. "
            f"Must be one of {ARCHITECTURES}."
        )

    if len(config.model.input_size) != 2:
        raise ValueError(
            f"model.input_size must be a (width, height) tuple, "
            f"got {config.model.input_size}."
        )

    if any(d <= 0 for d in config.model.input_size):
        raise ValueError(
            f"model.input_size dimensions must be positive, "
            f"got {config.model.input_size}."
        )

    if config.model.num_classes < 1:
        raise ValueError(
            f"model.num_classes must be >= 1, got {config.model.num_classes}."
        )

    if config.model.class_names and len(config.model.class_names) != config.model.num_classes:
        raise ValueError(
            f"model.class_names has {len(config.model.class_names)} entries "
            f"but model.num_classes is {config.model.num_classes}."
        )

    if len(config.model.anchors) != 12:
        raise ValueError(
            f"model.anchors must hold 12 values, got {len(config.model.anchors)}."
        )

    expected_outputs = len(DEFAULT_OUTPUT_NAMES[config.model.architecture])
    if config.model.output_names and len(config.model.output_names) != expected_outputs:
        raise ValueError(
            f"model.output_names must list {expected_outputs} name(s) for "
            f"'{config.model.architecture}', got {config.model.output_names}."
        )

    if not (0.0 <= config.detection.confidence_threshold <= 1.0):
        raise ValueError(
            f"detection.confidence_threshold must be in [0.0, 1.0], "
            f"got {config.detection.confidence_threshold}."
        )

    if not (0.0 <= config.detection.nms_threshold <= 1.0):
        raise ValueError(
            f"detection.nms_threshold must be in [0.0, 1.0], "
            f"got {config.detection.nms_threshold}."
        )

    modes = set(m.strip() for m in config.output.mode.split(","))
    invalid_modes = modes - _VALID_OUTPUT_MODES
    if invalid_modes:
        raise ValueError(
            f"Invalid output.mode(s): {invalid_modes}. "
            f"Valid modes: {_VALID_OUTPUT_MODES}. "
            f"Use comma-separated values for multiple outputs."
        )


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _parse_tuple(value, expected_len: Optional[int], cast_type=float):
    """Convert a list from YAML into a tuple of the expected type and length.

    Comma-separated strings (as set through environment variables) are
    split first. ``expected_len=None`` accepts any length.
    """
    if isinstance(value, str):
        value = [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        if expected_len is not None and len(value) != expected_len:
            raise ValueError(
                f"Expected {expected_len} values, got {len(value)}: {value}"
            )
        return tuple(cast_type(v) for v in value)
    return value


def _build_model_config(raw: dict) -> ModelConfig:
    """Build ModelConfig from a raw YAML dict."""
    kwargs = {}
    if "architecture" in raw:
        kwargs["architecture"] = str(raw["architecture"]).lower()
    if "input_size" in raw:
        kwargs["input_size"] = _parse_tuple(raw["input_size"], 2, int)
    if "class_names" in raw:
        kwargs["class_names"] = _parse_tuple(raw["class_names"] or (), None, str)
    if "num_classes" in raw:
        kwargs["num_classes"] = int(raw["num_classes"])
    elif kwargs.get("class_names"):
        kwargs["num_classes"] = len(kwargs["class_names"])
    if "anchors" in raw:
        kwargs["anchors"] = _parse_tuple(raw["anchors"], 12, float)
    if "output_names" in raw:
        kwargs["output_names"] = _parse_tuple(raw["output_names"] or (), None, str)
    return ModelConfig(**kwargs)


def _build_detection_config(raw: dict) -> DetectionConfig:
    """Build DetectionConfig from a raw YAML dict."""
    kwargs = {}
    if "confidence_threshold" in raw:
        kwargs["confidence_threshold"] = float(raw["confidence_threshold"])
    if "nms_threshold" in raw:
        kwargs["nms_threshold"] = float(raw["nms_threshold"])
    return DetectionConfig(**kwargs)


def _build_output_config(raw: dict) -> OutputConfig:
    """Build OutputConfig from a raw YAML dict."""
    kwargs = {}
    if "mode" in raw:
        kwargs["mode"] = str(raw["mode"]).lower()
    if "save_path" in raw:
        kwargs["save_path"] = str(raw["save_path"])
    return OutputConfig(**kwargs)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "FASTESTDET_"


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    Environment variables follow the pattern:
        FASTESTDET_MODEL_ARCHITECTURE=yolo-fastest
        FASTESTDET_DETECTION_CONFIDENCE_THRESHOLD=0.3

    The variable name maps to the nested config key: the first word
    after the prefix is the section, the rest is the key.
    """
    env_map = {
        f"{_ENV_PREFIX}MODEL_ARCHITECTURE": ("model", "architecture"),
        f"{_ENV_PREFIX}MODEL_NUM_CLASSES": ("model", "num_classes"),
        f"{_ENV_PREFIX}MODEL_INPUT_SIZE": ("model", "input_size"),
        f"{_ENV_PREFIX}MODEL_OUTPUT_NAMES": ("model", "output_names"),
        f"{_ENV_PREFIX}DETECTION_CONFIDENCE_THRESHOLD": ("detection", "confidence_threshold"),
        f"{_ENV_PREFIX}DETECTION_NMS_THRESHOLD": ("detection", "nms_threshold"),
        f"{_ENV_PREFIX}OUTPUT_MODE": ("output", "mode"),
        f"{_ENV_PREFIX}OUTPUT_SAVE_PATH": ("output", "save_path"),
    }

    for env_var, (section, key) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            raw.setdefault(section, {})[key] = value
            logger.debug("Config override from env: %s=%s", env_var, value)

    return raw


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

def validate_config(config: AppConfig) -> AppConfig:
    """Validate an AppConfig built in code. Returns it unchanged."""
    _validate(config)
    return config


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    Precedence (highest → lowest):
        Environment variables > YAML file > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None,
                     the system runs entirely on defaults.

    Returns:
        A validated, frozen AppConfig instance.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If any configuration value is invalid.
        yaml.YAMLError: If the YAML file is malformed.
    """
    raw: dict = {}

    # --- Layer 1: YAML file ---
    if config_path is not None:
        resolved = Path(config_path)
        if not resolved.is_absolute():
            resolved = _PROJECT_ROOT / resolved

        if not resolved.is_file():
            raise FileNotFoundError(
                f"Configuration file not found: {resolved}. "
                f"Provide a valid path or omit to use defaults."
            )

        logger.info("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # --- Layer 2: Environment variable overrides ---
    raw = _apply_env_overrides(raw)

    # --- Build typed configs ---
    config = AppConfig(
        model=_build_model_config(raw.get("model") or {}),
        detection=_build_detection_config(raw.get("detection") or {}),
        output=_build_output_config(raw.get("output") or {}),
    )

    # --- Validate ---
    _validate(config)

    logger.debug("Configuration loaded: %s", config)
    return config
