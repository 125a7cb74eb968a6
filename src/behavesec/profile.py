"""
A trained behavior profile: autoencoder + normalization statistics + thresholds,
committed together as one versioned unit.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
from sklearn.preprocessing import StandardScaler

from behavesec.config import DEFAULT_SENSITIVITY
from behavesec.features import FEATURE_DIM, FEATURE_SCHEMA_VERSION, BehaviorBaseline
from behavesec.model import BehaviorAutoencoder

# Added to std so constant features never divide by zero
EPSILON = 1e-7
MIN_THRESHOLD = 1e-8


@dataclass
class NormalizationStats:
    mean: np.ndarray
    std: np.ndarray
    input_dim: int
    sample_count: int

    @classmethod
    def fit(cls, X):
        X = np.asarray(X, dtype=np.float64)
        scaler = StandardScaler()
        scaler.fit(X)
        return cls(
            mean=scaler.mean_.copy(),
            std=np.sqrt(scaler.var_),
            input_dim=X.shape[1],
            sample_count=X.shape[0],
        )

    def transform(self, X):
        """Z-scores rows of X with the stored statistics."""
        return (np.asarray(X, dtype=np.float64) - self.mean) / (self.std + EPSILON)

    def to_dict(self):
        return {
            "mean": [float(v) for v in self.mean],
            "std": [float(v) for v in self.std],
            "input_dim": int(self.input_dim),
            "sample_count": int(self.sample_count),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            mean=np.asarray(data["mean"], dtype=np.float64),
            std=np.asarray(data["std"], dtype=np.float64),
            input_dim=int(data["input_dim"]),
            sample_count=int(data["sample_count"]),
        )


@dataclass
class ThresholdSet:
    """Reconstruction-error cutoffs keyed by sensitivity, plus the `legacy` mean + 2 std cutoff."""
    values: Dict[str, float]

    @classmethod
    def from_errors(cls, errors, percentiles):
        errors = np.sort(np.asarray(errors, dtype=np.float64))
        values = {
            name: max(float(np.percentile(errors, pct)), MIN_THRESHOLD)
            for name, pct in percentiles.items()
        }
        values["legacy"] = max(float(errors.mean() + 2 * errors.std()), MIN_THRESHOLD)
        return cls(values=values)

    def get(self, sensitivity):
        if sensitivity in self.values:
            return self.values[sensitivity]
        return self.values[DEFAULT_SENSITIVITY]

    def to_dict(self):
        return {name: float(value) for name, value in self.values.items()}

    @classmethod
    def from_dict(cls, data):
        return cls(values={str(name): float(value) for name, value in data.items()})


@dataclass
class BehaviorProfile:
    model: BehaviorAutoencoder
    normalization: NormalizationStats
    thresholds: ThresholdSet
    baseline: BehaviorBaseline
    schema_version: int = FEATURE_SCHEMA_VERSION
    version: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)
    epochs_trained: int = 0
    best_val_loss: Optional[float] = None

    @property
    def input_dim(self):
        return self.model.input_dim

    @property
    def sample_count(self):
        return self.normalization.sample_count

    def is_consistent(self):
        return (
            self.schema_version == FEATURE_SCHEMA_VERSION
            and self.input_dim == FEATURE_DIM
            and self.normalization.input_dim == self.input_dim
            and len(self.normalization.mean) == self.input_dim
            and len(self.normalization.std) == self.input_dim
            and DEFAULT_SENSITIVITY in self.thresholds.values
        )
