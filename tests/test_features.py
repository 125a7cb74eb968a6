# tests/test_features.py
# Feature extractor properties: output length, fixed width, finite values,
# and the per-kind measurements.
import numpy as np
import pytest

from behavesec.events import ClickButton, ClickEvent, MoveEvent, ScrollDirection, ScrollEvent, TypingEvent
from behavesec.features import (
    FEATURE_DIM, UNKNOWN_SPECIAL_KEY, FeatureExtractor, extract_features, hour_of_day, key_code,
)
from behavesec.synthetic import impostor_session, typing_events, user_session

T0 = 1_699_999_200.0


@pytest.mark.parametrize("n", [2, 3, 50, 301])
def test_batch_yields_one_vector_per_event_with_predecessor(n):
    events = user_session(n, start=T0, seed=n)
    vectors, _ = extract_features(events)
    assert vectors.shape == (n - 1, FEATURE_DIM)
    assert np.all(np.isfinite(vectors))


def test_single_event_yields_nothing():
    vectors, _ = extract_features(typing_events(1, start=T0))
    assert vectors.shape == (0, FEATURE_DIM)


def test_impostor_stream_is_finite():
    vectors, _ = extract_features(impostor_session(200, start=T0, seed=3))
    assert np.all(np.isfinite(vectors))


def test_key_codes():
    assert key_code("a") == pytest.approx(97 / 255)
    assert key_code(" ") == pytest.approx(32 / 255)
    assert key_code("Enter") == 0.9
    assert key_code("Backspace") == 0.91
    assert key_code("F13") == UNKNOWN_SPECIAL_KEY
    assert key_code("\t") == UNKNOWN_SPECIAL_KEY
    assert key_code(None) == 0.0


def test_typing_vector_layout():
    events = [
        TypingEvent(key="l", interval_ms=0, timestamp=T0),
        TypingEvent(key="l", previous_key="l", interval_ms=100, timestamp=T0 + 0.1),
        TypingEvent(key=" ", previous_key="l", interval_ms=100, timestamp=T0 + 0.2),
    ]
    vectors, _ = extract_features(events)
    repeat, boundary = vectors
    assert repeat[0] == 0.1
    assert repeat[6] == 1.0           # repeated key
    assert repeat[7] == 0.1           # previous kind: typing
    assert boundary[4] == 0.8         # word boundary
    assert boundary[8] == 0.1         # end of batch: next kind continues as typing
    assert boundary[9] == hour_of_day(T0 + 0.2)
    assert list(boundary[10:]) == [0.0, 0.0]


def test_shift_and_backspace_patterns():
    events = [
        TypingEvent(key="Shift", interval_ms=0, timestamp=T0),
        TypingEvent(key="A", previous_key="Shift", interval_ms=90, timestamp=T0 + 0.1),
        TypingEvent(key="Backspace", previous_key="A", interval_ms=90, timestamp=T0 + 0.2),
    ]
    vectors, _ = extract_features(events)
    assert vectors[0][4] == 0.9
    assert vectors[1][4] == 0.7


def test_click_features():
    events = [
        MoveEvent(x=500, y=500, dx=1, dy=1, interval_ms=0, timestamp=T0),
        ClickEvent(button=ClickButton.RIGHT, x=10, y=10, interval_ms=200, timestamp=T0 + 0.2),
        ClickEvent(button=ClickButton.MIDDLE, x=960, y=540, interval_ms=200, timestamp=T0 + 0.4),
    ]
    vectors, baseline = extract_features(events, viewport=(1920, 1080))
    edge, center = vectors
    assert edge[0] == 0.2
    assert edge[1] == 1.0
    assert edge[6] == 1.0             # within 10% of the edge
    assert edge[8] == 0.4             # previous kind: move
    assert edge[9] == 0.25            # next kind: middle click
    assert center[1] == 0.5
    assert center[5] == pytest.approx(0.0)
    assert center[6] == 0.0
    assert baseline.click_count == 2
    assert baseline.click_dispersion > 0
    assert 0 < center[7] <= 1


def test_move_smoothness_and_velocity():
    straight = [MoveEvent(x=100 + 10 * i, y=100, dx=10, dy=0, interval_ms=10, timestamp=T0 + i * 0.01) for i in range(4)]
    vectors, _ = extract_features(straight)
    assert vectors[-1][8] == pytest.approx(1.0)
    assert 0.0 <= vectors[-1][6] <= 1.0
    assert 0.0 <= vectors[-1][7] <= 1.0

    reversal = [
        MoveEvent(x=100, y=100, dx=0, dy=0, interval_ms=0, timestamp=T0),
        MoveEvent(x=110, y=100, dx=10, dy=0, interval_ms=10, timestamp=T0 + 0.01),
        MoveEvent(x=100, y=100, dx=-10, dy=0, interval_ms=10, timestamp=T0 + 0.02),
    ]
    vectors, _ = extract_features(reversal)
    assert vectors[-1][8] == pytest.approx(0.0)


def test_scroll_features():
    events = [
        ScrollEvent(direction=ScrollDirection.DOWN, delta_y=60, x=500, y=500, interval_ms=0, timestamp=T0),
        ScrollEvent(direction=ScrollDirection.DOWN, delta_y=60, x=500, y=500, interval_ms=800, timestamp=T0 + 0.8),
        ScrollEvent(direction=ScrollDirection.UP, delta_y=-290, x=500, y=500, interval_ms=1, timestamp=T0 + 0.9),
    ]
    vectors, _ = extract_features(events)
    steady, skim = vectors
    assert steady[1] == 1.0
    assert steady[6] == pytest.approx(1.0)   # same magnitude as the previous scroll
    assert steady[7] == 0.8                  # slow and short: reading
    assert skim[1] == 0.0
    assert skim[6] == 0.0
    assert skim[7] == 0.2                    # fast and long: skimming


def test_inference_uses_persisted_baseline():
    training = typing_events(100, mean_ms=120.0, std_ms=20.0, start=T0, seed=1)
    extractor = FeatureExtractor()
    extractor.fit(training)
    baseline = extractor.baseline

    live = typing_events(3, mean_ms=900.0, std_ms=1.0, start=T0 + 60, seed=2)
    persisted = FeatureExtractor(baseline=baseline)
    vector = persisted.extract(live[2], live[:2])
    assert persisted.baseline is baseline
    assert vector.shape == (FEATURE_DIM,)
    assert vector[5] > 0.99           # far slower than the trained rhythm

    assert persisted.extract(live[0], []) is None


def test_extract_without_baseline_is_rejected():
    events = typing_events(2, start=T0)
    with pytest.raises(ValueError):
        FeatureExtractor().extract(events[1], events[:1])


def test_millisecond_timestamps_read_as_seconds():
    assert hour_of_day(T0 * 1000) == hour_of_day(T0)


@pytest.mark.parametrize("timestamp", [9e15, 1e300, -1e300])
def test_hour_without_calendar_date_is_zero(timestamp):
    assert hour_of_day(timestamp) == 0.0
