# tests/test_train.py
# Profile trainer: sample-count boundary, progress reporting, threshold
# calibration and cancellation.
import numpy as np
import pytest

from behavesec.config import DetectorConfig, TrainingConfig
from behavesec.exceptions import InsufficientData, TrainingCancelled, TrainingFailure
from behavesec.features import FEATURE_DIM, FeatureExtractor
from behavesec.model import layer_widths
from behavesec.synthetic import typing_events, user_session
from behavesec.train import split_train_validation, train_profile

T0 = 1_699_999_200.0


def small_config(**training):
    params = {"epochs": 3, "seed": 0}
    params.update(training)
    return DetectorConfig(min_samples=20, training=TrainingConfig(**params))


def test_exactly_min_samples_trains():
    profile = train_profile(typing_events(20, start=T0, seed=1), small_config())
    assert profile.input_dim == FEATURE_DIM
    assert profile.sample_count == 19


def test_one_below_min_samples_raises_insufficient_data():
    with pytest.raises(InsufficientData) as excinfo:
        train_profile(typing_events(19, start=T0, seed=1), small_config())
    assert excinfo.value.sample_count == 19
    assert excinfo.value.required == 20


def test_progress_is_reported_per_epoch():
    calls = []
    train_profile(user_session(60, start=T0, seed=2), small_config(epochs=4, patience=10),
                  progress=lambda phase, pct, msg: calls.append((phase, pct, msg)))

    phases = [c[0] for c in calls]
    assert phases[0] == "extracting"
    assert phases[-1] == "complete"
    epochs = [c for c in calls if c[0] == "training"]
    assert len(epochs) == 4
    percents = [c[1] for c in epochs]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert all(0 <= c[1] <= 100 for c in calls)


def test_thresholds_follow_sensitivity(typing_profile):
    values = typing_profile.thresholds.values
    assert set(values) == {"low", "medium", "high", "legacy"}
    assert values["low"] >= values["medium"] >= values["high"] > 0


def test_normalization_stats_cover_the_batch(typing_profile, typing_batch):
    stats = typing_profile.normalization
    assert stats.input_dim == FEATURE_DIM
    assert stats.sample_count == len(typing_batch) - 1
    assert stats.mean.shape == (FEATURE_DIM,)
    assert np.all(stats.std >= 0)
    assert typing_profile.is_consistent()


def test_validation_rows_come_from_the_tail():
    X = np.arange(20, dtype=float).reshape(10, 2)
    X_train, X_val = split_train_validation(X, 0.2)
    assert X_val.tolist() == X[-2:].tolist()
    assert X_train.tolist() == X[:-2].tolist()


def test_cancellation_stops_training():
    with pytest.raises(TrainingCancelled):
        train_profile(typing_events(40, start=T0, seed=3), small_config(), should_stop=lambda: True)


def test_millisecond_timestamps_train():
    profile = train_profile(typing_events(30, start=T0 * 1000, seed=3), small_config())
    assert profile.is_consistent()


def test_extraction_error_becomes_training_failure(monkeypatch):
    def broken_transform(self, events):
        raise ValueError("malformed batch")

    monkeypatch.setattr(FeatureExtractor, "transform", broken_transform)
    with pytest.raises(TrainingFailure, match="malformed batch"):
        train_profile(typing_events(30, start=T0, seed=3), small_config())


def test_layer_widths_have_floors():
    assert layer_widths(FEATURE_DIM) == (16, 8, 4)
    assert layer_widths(100) == (80, 60, 40)
