"""
Feature extraction: turns canonical interaction events into fixed-length vectors.

Every event kind is embedded into the same FEATURE_DIM-wide space:

    typing  [id, prev key, key, interval, pattern, rhythm, repeat, prev kind, next kind, hour, 0, 0]
    click   [id, button, x, y, interval, center dist, edge, consistency, prev kind, next kind, hour, 0]
    move    [id, dx, dy, x, y, interval, velocity, acceleration, smoothness, prev kind, next kind, hour]
    scroll  [id, direction, magnitude, x, y, interval, pattern, reading, prev kind, next kind, hour, 0]

A first pass over a training batch produces a BehaviorBaseline (typing rhythm,
pointer velocity, click dispersion, key transitions). The baseline is persisted
with the model so inference uses the same statistics as training.
"""
from __future__ import annotations

import math
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from behavesec.events import (
    ClickButton, ClickEvent, EventKind, MoveEvent, ScrollDirection, ScrollEvent, TypingEvent,
)

FEATURE_DIM = 12
# Bump whenever the vector layout changes so stored profiles are rejected.
FEATURE_SCHEMA_VERSION = 3

# Non-printable keys; unknown ones map to UNKNOWN_SPECIAL_KEY
SPECIAL_KEYS = {
    "ArrowLeft": 0.85,
    "ArrowRight": 0.86,
    "ArrowUp": 0.87,
    "ArrowDown": 0.88,
    "Delete": 0.89,
    "Enter": 0.9,
    "Backspace": 0.91,
    "Space": 0.92,
    "Tab": 0.93,
    "Shift": 0.94,
    "Control": 0.95,
    "Alt": 0.96,
    "Meta": 0.97,
    "CapsLock": 0.98,
    "Escape": 0.99,
}
UNKNOWN_SPECIAL_KEY = 0.84

WORD_BOUNDARY_KEYS = {" ", "Enter", "."}
BUTTON_CODES = {ClickButton.LEFT: 0.0, ClickButton.MIDDLE: 0.5, ClickButton.RIGHT: 1.0}

EDGE_MARGIN = 0.1
MOVE_DELTA_SCALE = 100.0
SCROLL_DELTA_SCALE = 300.0
SCROLL_PATTERN_SCALE = 100.0
TOP_TRANSITIONS = 20

# Epoch values at or above this are milliseconds (in seconds it is the year 5138)
MILLISECOND_EPOCH = 1e11


def key_code(key: Optional[str]) -> float:
    """Printable characters map to char code / 255, named keys use a lookup table."""
    if not key:
        return 0.0
    if len(key) == 1 and key.isprintable():
        return min(ord(key), 255) / 255
    return SPECIAL_KEYS.get(key, UNKNOWN_SPECIAL_KEY)


def normalized_interval(interval_ms: float) -> float:
    # Log scale for a better distribution
    return math.log(max(interval_ms, 0.0) + 1) / 10


def hour_of_day(timestamp: float) -> float:
    """Local hour as a fraction of the day; 0.0 when the timestamp has no calendar date."""
    if abs(timestamp) >= MILLISECOND_EPOCH:
        timestamp = timestamp / 1000
    try:
        return datetime.fromtimestamp(timestamp).hour / 24
    except (ValueError, OverflowError, OSError):
        return 0.0


def _clamp(value, low=0.0, high=1.0):
    return min(high, max(low, value))


def _sigmoid(x):
    return 0.5 * (1.0 + math.tanh(x / 2.0))


def _mean_std(values):
    if not values:
        return 0.0, 1.0
    arr = np.asarray(values, dtype=np.float64)
    return float(arr.mean()), float(arr.std())


def _distance(a, b):
    return math.hypot(b.x - a.x, b.y - a.y)


@dataclass
class BehaviorBaseline:
    """Aggregate statistics of a training batch used as context for every vector."""
    typing_interval_mean: float = 0.0
    typing_interval_std: float = 1.0
    typing_count: int = 0
    velocity_mean: float = 0.0
    velocity_std: float = 1.0
    velocity_count: int = 0
    click_dispersion: float = 0.0
    click_count: int = 0
    key_transitions: Dict[str, int] = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**data)


class FeatureExtractor:
    """
    Builds feature vectors from ordered events.

    Without a baseline, transform() fits one from the batch it is given.
    For inference construct the extractor with the persisted baseline.
    """

    def __init__(self, baseline: Optional[BehaviorBaseline] = None, viewport: Tuple[int, int] = (1920, 1080)):
        self.baseline = baseline
        self.width = max(float(viewport[0]), 1.0)
        self.height = max(float(viewport[1]), 1.0)
        self._handlers = {
            EventKind.TYPING: self._typing_features,
            EventKind.CLICK: self._click_features,
            EventKind.MOVE: self._move_features,
            EventKind.SCROLL: self._scroll_features,
        }

    # --- first pass ---

    def fit(self, events: Sequence) -> BehaviorBaseline:
        typing_intervals = []
        velocities = []
        click_positions = []
        transitions = Counter()

        for index, event in enumerate(events):
            if isinstance(event, ClickEvent):
                click_positions.append(self._position(event))
            if index == 0:
                continue
            prev = events[index - 1]

            if isinstance(event, TypingEvent):
                typing_intervals.append(normalized_interval(event.interval_ms))
                if isinstance(prev, TypingEvent):
                    transitions[f"{prev.key}_{event.key}"] += 1

            if isinstance(event, MoveEvent) and isinstance(prev, MoveEvent):
                velocities.append(_distance(prev, event) / max(event.interval_ms, 1.0))

        typing_mean, typing_std = _mean_std(typing_intervals)
        velocity_mean, velocity_std = _mean_std(velocities)

        # Click dispersion: mean distance of clicks from their centroid
        dispersion = 0.0
        if len(click_positions) > 1:
            positions = np.asarray(click_positions)
            dispersion = float(np.linalg.norm(positions - positions.mean(axis=0), axis=1).mean())

        self.baseline = BehaviorBaseline(
            typing_interval_mean=typing_mean,
            typing_interval_std=typing_std,
            typing_count=len(typing_intervals),
            velocity_mean=velocity_mean,
            velocity_std=velocity_std,
            velocity_count=len(velocities),
            click_dispersion=dispersion,
            click_count=len(click_positions),
            key_transitions=dict(transitions.most_common(TOP_TRANSITIONS)),
        )
        return self.baseline

    # --- second pass ---

    def transform(self, events: Sequence) -> np.ndarray:
        """One vector per event that has a predecessor: shape (len(events) - 1, FEATURE_DIM)."""
        if self.baseline is None:
            self.fit(events)

        vectors = []
        for index in range(1, len(events)):
            before = events[index - 2] if index >= 2 else None
            following = events[index + 1] if index + 1 < len(events) else None
            vectors.append(self._vector(events[index], events[index - 1], before, following))

        if not vectors:
            return np.zeros((0, FEATURE_DIM), dtype=np.float64)
        return np.vstack(vectors)

    def extract(self, event, history: Sequence) -> Optional[np.ndarray]:
        """
        Builds the vector for one live event. `history` holds the preceding
        events, most recent last. Returns None when there is no predecessor.
        """
        if not history:
            return None
        if self.baseline is None:
            raise ValueError("extract() needs a fitted or persisted baseline")
        before = history[-2] if len(history) >= 2 else None
        return self._vector(event, history[-1], before, None)

    def _vector(self, event, prev, before, following) -> np.ndarray:
        interval = normalized_interval(event.interval_ms)
        # Unknown follow-up (end of batch, live scoring): assume the same kind continues
        next_code = following.kind_code if following is not None else event.kind_code
        context = [prev.kind_code, next_code, hour_of_day(event.timestamp)]

        values = self._handlers[event.kind](event, prev, before, interval, context)

        # Pad or truncate to FEATURE_DIM
        values = list(values[:FEATURE_DIM]) + [0.0] * max(0, FEATURE_DIM - len(values))
        vector = np.asarray(values, dtype=np.float64)
        return np.nan_to_num(vector, nan=0.0, posinf=1.0, neginf=0.0)

    def _position(self, event):
        return (_clamp(event.x / self.width), _clamp(event.y / self.height))

    def _typing_features(self, event, prev, before, interval, context):
        previous_key = event.previous_key
        if previous_key is None and isinstance(prev, TypingEvent):
            previous_key = prev.key

        pattern = 0.0
        if event.key in WORD_BOUNDARY_KEYS:
            pattern = 0.8
        elif previous_key == "Shift":
            pattern = 0.9
        elif event.key == "Backspace":
            pattern = 0.7

        # How consistent this keypress is with the user's rhythm
        rhythm = 0.0
        baseline = self.baseline
        if baseline.typing_count > 5:
            spread = baseline.typing_interval_std or 1.0
            rhythm = _sigmoid((interval - baseline.typing_interval_mean) / spread)

        repeated = 1.0 if previous_key == event.key else 0.0

        return [0.1, key_code(previous_key), key_code(event.key), interval, pattern, rhythm, repeated] + context

    def _click_features(self, event, prev, before, interval, context):
        x, y = self._position(event)
        center_distance = math.hypot(x - 0.5, y - 0.5)
        is_edge = 1.0 if (x < EDGE_MARGIN or x > 1 - EDGE_MARGIN or y < EDGE_MARGIN or y > 1 - EDGE_MARGIN) else 0.0

        dispersion = self.baseline.click_dispersion
        consistency = min(1.0, 1 / (dispersion * 10)) if dispersion > 0 else 0.5

        return [0.2, BUTTON_CODES[event.button], x, y, interval, center_distance, is_edge, consistency] + context

    def _normalized_velocity(self, start, end):
        raw = _distance(start, end) / max(end.interval_ms, 1.0)
        scale = self.baseline.velocity_mean * 3 or 1.0
        return _clamp(raw / scale)

    def _move_features(self, event, prev, before, interval, context):
        velocity = 0.0
        acceleration = 0.0
        smoothness = 0.5

        if isinstance(prev, MoveEvent):
            velocity = self._normalized_velocity(prev, event)

            if isinstance(before, MoveEvent):
                prev_velocity = self._normalized_velocity(before, prev)
                change = (velocity - prev_velocity) / max(event.interval_ms, 1.0)
                acceleration = _clamp(change, -1.0, 1.0) * 0.5 + 0.5

                # Angle between consecutive movement vectors
                v1 = (prev.x - before.x, prev.y - before.y)
                v2 = (event.x - prev.x, event.y - prev.y)
                m1 = math.hypot(*v1)
                m2 = math.hypot(*v2)
                if m1 > 0 and m2 > 0:
                    cos_angle = _clamp((v1[0] * v2[0] + v1[1] * v2[1]) / (m1 * m2), -1.0, 1.0)
                    smoothness = (cos_angle + 1) / 2

        x, y = self._position(event)
        return [
            0.3,
            _clamp(event.dx / MOVE_DELTA_SCALE, -1.0, 1.0),
            _clamp(event.dy / MOVE_DELTA_SCALE, -1.0, 1.0),
            x,
            y,
            interval,
            velocity,
            acceleration,
            smoothness,
        ] + context

    def _scroll_features(self, event, prev, before, interval, context):
        direction = 1.0 if event.direction is ScrollDirection.DOWN else 0.0
        magnitude = abs(event.delta_y)
        normalized_magnitude = min(1.0, magnitude / SCROLL_DELTA_SCALE)

        # Smooth vs chunky scrolling
        pattern = 0.5
        if isinstance(prev, ScrollEvent):
            pattern = 1 - min(1.0, abs(magnitude - abs(prev.delta_y)) / SCROLL_PATTERN_SCALE)

        # Slow methodical reading vs fast skimming
        reading = 0.5
        if interval > 0.2 and normalized_magnitude < 0.3:
            reading = 0.8
        elif interval < 0.1 and normalized_magnitude > 0.7:
            reading = 0.2

        x, y = self._position(event)
        return [0.4, direction, normalized_magnitude, x, y, interval, pattern, reading] + context


def extract_features(events, baseline=None, viewport=(1920, 1080)):
    """Convenience wrapper: returns (vectors, baseline) for a batch."""
    extractor = FeatureExtractor(baseline=baseline, viewport=viewport)
    vectors = extractor.transform(events)
    return vectors, extractor.baseline
