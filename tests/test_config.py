# tests/test_config.py
from pathlib import Path

import pytest

from behavesec.config import DetectorConfig, TrainingConfig


def test_presets_set_window_samples_and_sensitivity():
    config = DetectorConfig.from_preset("high_security")
    assert config.training_period_seconds == 900
    assert config.min_samples == 800
    assert config.sensitivity == "high"

    with pytest.raises(ValueError):
        DetectorConfig.from_preset("overnight")


def test_from_dict_builds_nested_training_config():
    config = DetectorConfig.from_dict({
        "min_samples": 50,
        "feature_importance": {"move": 1.5},
        "model_path": "/tmp/p.pt",
        "training": {"epochs": 5, "seed": 3},
    })
    assert config.training == TrainingConfig(epochs=5, seed=3)
    assert config.importance("move") == 1.5
    assert config.importance("typing") == 1.0
    assert config.model_path == Path("/tmp/p.pt")


@pytest.mark.parametrize("data", [
    {"sensitivity": "extreme"},
    {"min_samples": 1},
    {"feature_importance": {"typing": 3.0}},
    {"feature_importance": {"voice": 1.0}},
    {"colour": "blue"},
    {"training": {"epochz": 3}},
])
def test_invalid_settings_are_rejected(data):
    with pytest.raises(ValueError):
        DetectorConfig.from_dict(data)
