"""
Tests for the configuration module.
"""

import pytest

from fastestdet.config import (
    AppConfig,
    DetectionConfig,
    ModelConfig,
    OutputConfig,
    _validate,
    load_config,
    resolve_output_names,
)
from fastestdet.decoders import YOLO_FASTEST_ANCHORS


def test_load_defaults():
    """Test loading configuration without any file."""
    config = load_config(None)
    assert isinstance(config, AppConfig)
    assert config.model.architecture == "fastestdet"
    assert config.model.input_size == (352, 352)
    assert config.model.num_classes == 80
    assert config.model.anchors == YOLO_FASTEST_ANCHORS
    assert config.detection.confidence_threshold == 0.5
    assert config.detection.nms_threshold == 0.45
    assert config.output.mode == "log"


def test_validation_failure():
    """Test fail-fast validation."""
    bad_config = AppConfig(detection=DetectionConfig(confidence_threshold=1.5))
    with pytest.raises(ValueError, match="confidence_threshold"):
        _validate(bad_config)

    bad_config = AppConfig(detection=DetectionConfig(nms_threshold=-0.1))
    with pytest.raises(ValueError, match="nms_threshold"):
        _validate(bad_config)

    bad_config = AppConfig(model=ModelConfig(architecture="invalid"))
    with pytest.raises(ValueError, match="architecture"):
        _validate(bad_config)

    bad_config = AppConfig(model=ModelConfig(num_classes=0))
    with pytest.raises(ValueError, match="num_classes"):
        _validate(bad_config)

    bad_config = AppConfig(model=ModelConfig(input_size=(352, 0)))
    with pytest.raises(ValueError, match="input_size"):
        _validate(bad_config)

    bad_config = AppConfig(model=ModelConfig(anchors=(1.0, 2.0)))
    with pytest.raises(ValueError, match="anchors"):
        _validate(bad_config)

    bad_config = AppConfig(output=OutputConfig(mode="log,display"))
    with pytest.raises(ValueError, match="output.mode"):
        _validate(bad_config)


def test_class_names_must_match_num_classes():
    bad_config = AppConfig(model=ModelConfig(num_classes=3, class_names=("a", "b")))
    with pytest.raises(ValueError, match="class_names"):
        _validate(bad_config)


def test_output_names_count_must_match_architecture():
    bad_config = AppConfig(
        model=ModelConfig(architecture="yolo-fastest", output_names=("794",))
    )
    with pytest.raises(ValueError, match="output_names"):
        _validate(bad_config)


def test_resolve_output_names():
    assert resolve_output_names(ModelConfig()) == ("758",)
    assert resolve_output_names(ModelConfig(architecture="yolo-fastest")) == ("794", "796")
    assert resolve_output_names(ModelConfig(output_names=("out",))) == ("out",)


def test_env_override(monkeypatch):
    """Test environment variable overrides."""
    monkeypatch.setenv("FASTESTDET_DETECTION_CONFIDENCE_THRESHOLD", "0.3")
    monkeypatch.setenv("FASTESTDET_MODEL_ARCHITECTURE", "YOLO-FASTEST")
    monkeypatch.setenv("FASTESTDET_MODEL_INPUT_SIZE", "320,320")
    monkeypatch.setenv("FASTESTDET_MODEL_OUTPUT_NAMES", "a, b")

    config = load_config(None)

    assert config.detection.confidence_threshold == 0.3
    assert config.model.architecture == "yolo-fastest"
    assert config.model.input_size == (320, 320)
    assert config.model.output_names == ("a", "b")


def test_load_yaml(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "model:\n"
        "  architecture: yolo-fastest\n"
        "  class_names: [person, car]\n"
        "detection:\n"
        "  confidence_threshold: 0.25\n"
        "  nms_threshold: 0.3\n"
        "output:\n"
        "  mode: save_json,save_csv\n"
        f"  save_path: {tmp_path / 'out'}\n",
        encoding="utf-8",
    )

    config = load_config(str(config_file))

    assert config.model.architecture == "yolo-fastest"
    assert config.model.class_names == ("person", "car")
    assert config.model.num_classes == 2
    assert config.detection.confidence_threshold == 0.25
    assert config.detection.nms_threshold == 0.3
    assert config.output.mode == "save_json,save_csv"


def test_env_overrides_yaml(tmp_path, monkeypatch):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("detection:\n  nms_threshold: 0.3\n", encoding="utf-8")
    monkeypatch.setenv("FASTESTDET_DETECTION_NMS_THRESHOLD", "0.6")

    assert load_config(str(config_file)).detection.nms_threshold == 0.6


def test_empty_yaml_uses_defaults(tmp_path):
    config_file = tmp_path / "empty.yaml"
    config_file.write_text("", encoding="utf-8")
    assert load_config(str(config_file)) == AppConfig()


def test_bad_anchor_count_in_yaml(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("model:\n  anchors: [1, 2, 3]\n", encoding="utf-8")
    with pytest.raises(ValueError, match="12"):
        load_config(str(config_file))


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))
