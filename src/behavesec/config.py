"""
Shared configuration and constants for the Behavioral Biometrics Anomaly Detector.
"""
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional, Tuple

# File Paths
# Use pathlib for more robust cross-platform path handling
BASE_DIR = Path(os.environ.get("BEHAVESEC_HOME", Path.cwd())).resolve()
DATA_DIR = BASE_DIR / "data"

MODEL_FILE = DATA_DIR / "behavior_profile.pt"

# Sensitivity presets, least to most aggressive
SENSITIVITIES = ("low", "medium", "high")
DEFAULT_SENSITIVITY = "medium"

# Status cutoffs on the mean anomaly score: (uncertain, different)
STATUS_CUTOFFS = {
    "low": (30.0, 70.0),
    "medium": (25.0, 60.0),
    "high": (20.0, 50.0),
}

# Percentile of the training reconstruction error used as threshold per sensitivity
THRESHOLD_PERCENTILES = {
    "low": 99.0,
    "medium": 95.0,
    "high": 90.0,
}

EVENT_KINDS = ("typing", "click", "move", "scroll")


@dataclass(frozen=True)
class TrainingConfig:
    epochs: int = 50
    batch_size: int = 16
    validation_fraction: float = 0.2
    patience: int = 10
    learning_rate: float = 1e-3
    weight_decay: float = 1e-5
    percentiles: Dict[str, float] = field(default_factory=lambda: dict(THRESHOLD_PERCENTILES))
    seed: Optional[int] = None


@dataclass(frozen=True)
class DetectorConfig:
    training_period_seconds: int = 60
    min_samples: int = 100
    sensitivity: str = DEFAULT_SENSITIVITY
    feature_importance: Dict[str, float] = field(
        default_factory=lambda: {kind: 1.0 for kind in EVENT_KINDS}
    )
    viewport: Tuple[int, int] = (1920, 1080)

    # Rolling history / status classification
    history_size: int = 20
    status_min_history: int = 10
    status_window: int = 10

    # Raw error / threshold ratio is multiplied by this before clamping to 0-100
    score_scale: float = 50.0

    model_path: Path = MODEL_FILE
    training: TrainingConfig = field(default_factory=TrainingConfig)

    def __post_init__(self):
        if self.sensitivity not in SENSITIVITIES:
            raise ValueError(f"Unknown sensitivity '{self.sensitivity}', expected one of {SENSITIVITIES}")
        if self.min_samples < 5:
            raise ValueError("min_samples must be at least 5")
        if self.training_period_seconds < 1:
            raise ValueError("training_period_seconds must be positive")
        for kind, weight in self.feature_importance.items():
            if kind not in EVENT_KINDS:
                raise ValueError(f"Unknown event kind in feature_importance: '{kind}'")
            if not 0.1 <= weight <= 2.0:
                raise ValueError(f"feature_importance[{kind}] must be within 0.1-2.0, got {weight}")

    def importance(self, kind):
        return self.feature_importance.get(kind, 1.0)

    @classmethod
    def from_preset(cls, name, **overrides):
        if name not in PRESETS:
            raise ValueError(f"Unknown preset '{name}', expected one of {sorted(PRESETS)}")
        values = dict(PRESETS[name])
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_dict(cls, data):
        """
        Builds a config from a plain mapping (e.g. parsed JSON).

        Unknown keys are rejected. A nested ``training`` mapping is turned into
        a TrainingConfig.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

        values = dict(data)
        if isinstance(values.get("training"), dict):
            training_known = {f.name for f in fields(TrainingConfig)}
            bad = set(values["training"]) - training_known
            if bad:
                raise ValueError(f"Unknown training configuration keys: {sorted(bad)}")
            values["training"] = TrainingConfig(**values["training"])
        if "model_path" in values:
            values["model_path"] = Path(values["model_path"])
        if "viewport" in values:
            values["viewport"] = tuple(values["viewport"])
        if "feature_importance" in values:
            merged = {kind: 1.0 for kind in EVENT_KINDS}
            merged.update(values["feature_importance"])
            values["feature_importance"] = merged
        return cls(**values)


# Quick presets (training window seconds / minimum samples / sensitivity)
PRESETS = {
    "quick": {"training_period_seconds": 60, "min_samples": 100, "sensitivity": "medium"},
    "standard": {"training_period_seconds": 300, "min_samples": 300, "sensitivity": "medium"},
    "thorough": {"training_period_seconds": 600, "min_samples": 500, "sensitivity": "medium"},
    "high_security": {"training_period_seconds": 900, "min_samples": 800, "sensitivity": "high"},
}
