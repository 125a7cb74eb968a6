"""
Anomaly scoring for live events against a committed BehaviorProfile.

Scoring is a pure function of (profile, event, history, sensitivity, config):
it never raises, and every unmet precondition yields an unavailable result.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import torch
from sklearn.metrics import mean_squared_error

from behavesec.config import DEFAULT_SENSITIVITY, DetectorConfig
from behavesec.exceptions import FeatureDimensionMismatch
from behavesec.features import FeatureExtractor
from behavesec.logger import logger

MAX_SCORE = 100.0


@dataclass(frozen=True)
class ScoreResult:
    score: Optional[float]
    sensitivity: str
    reconstruction_error: Optional[float] = None
    threshold: Optional[float] = None
    reason: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.score is not None


def _unavailable(sensitivity, reason):
    return ScoreResult(score=None, sensitivity=sensitivity, reason=reason)


def reconstruction_error(profile, vector) -> float:
    """MSE between one normalized feature vector and its reconstruction."""
    vector = np.asarray(vector, dtype=np.float64)
    if vector.shape[-1] != profile.input_dim or profile.normalization.input_dim != profile.input_dim:
        raise FeatureDimensionMismatch(profile.input_dim, vector.shape[-1])

    input_vector = profile.normalization.transform(vector.reshape(1, -1)).astype(np.float32)
    profile.model.eval()  # Ensure model is in eval mode
    with torch.no_grad():
        reconstructed = profile.model(torch.from_numpy(input_vector)).numpy()
    return float(mean_squared_error(input_vector[0], reconstructed[0]))


def score_event(profile, event, history, sensitivity=DEFAULT_SENSITIVITY, config: Optional[DetectorConfig] = None) -> ScoreResult:
    """
    Scores one event (with its preceding events in `history`) on a 0-100 scale.

    score = error / threshold[sensitivity] * score_scale * importance[kind],
    clamped to [0, 100]. Unknown sensitivities fall back to the medium threshold.
    """
    config = config or DetectorConfig()

    if profile is None:
        return _unavailable(sensitivity, "no model loaded")
    if profile.normalization is None or profile.thresholds is None:
        return _unavailable(sensitivity, "normalization statistics missing")

    extractor = FeatureExtractor(baseline=profile.baseline, viewport=config.viewport)
    try:
        vector = extractor.extract(event, history)
    except (ValueError, ArithmeticError) as e:
        logger.warning(f"Skipping score: feature extraction failed: {e}")
        return _unavailable(sensitivity, f"feature extraction failed: {e}")
    if vector is None:
        return _unavailable(sensitivity, "no predecessor event")

    try:
        error = reconstruction_error(profile, vector)
    except FeatureDimensionMismatch as e:
        logger.warning(f"Skipping score: {e}")
        return _unavailable(sensitivity, str(e))

    threshold = profile.thresholds.get(sensitivity)
    raw = error / threshold * config.score_scale * config.importance(event.kind.value)
    score = float(min(MAX_SCORE, max(0.0, raw)))

    return ScoreResult(
        score=score,
        sensitivity=sensitivity,
        reconstruction_error=error,
        threshold=threshold,
    )
