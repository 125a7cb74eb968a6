# tests/conftest.py
# Shared fixtures. Training a profile takes a couple of seconds, so the
# scenario profile is trained once per test session.
import pytest

from behavesec.config import DetectorConfig, TrainingConfig
from behavesec.events import TypingEvent
from behavesec.synthetic import typing_events
from behavesec.train import train_profile

# 22:00:00 UTC; whole minutes past the hour in every time zone, so the
# hour-of-day feature is constant across a training batch.
TRAINING_START = 1_699_999_200.0


@pytest.fixture(scope="session")
def typing_batch():
    return typing_events(250, mean_ms=120.0, std_ms=20.0, start=TRAINING_START, seed=7)


@pytest.fixture(scope="session")
def scenario_config(tmp_path_factory):
    return DetectorConfig(
        min_samples=20,
        training=TrainingConfig(epochs=60, patience=15, seed=42),
        model_path=tmp_path_factory.mktemp("models") / "profile.pt",
    )


@pytest.fixture(scope="session")
def typing_profile(typing_batch, scenario_config):
    return train_profile(typing_batch, scenario_config)


@pytest.fixture
def fast_config(tmp_path):
    return DetectorConfig(
        training_period_seconds=1,
        min_samples=20,
        training=TrainingConfig(epochs=3, seed=0),
        model_path=tmp_path / "profile.pt",
    )


def typing_followup(batch, key, previous_key, interval_ms):
    """A live keystroke right after the training batch, plus its history."""
    last = batch[-1]
    predecessor = TypingEvent(key=previous_key, previous_key=last.key, interval_ms=120.0,
                              timestamp=last.timestamp + 0.12)
    event = TypingEvent(key=key, previous_key=previous_key, interval_ms=interval_ms,
                        timestamp=predecessor.timestamp + interval_ms / 1000.0)
    return event, [last, predecessor]
