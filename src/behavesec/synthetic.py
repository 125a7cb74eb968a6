"""
Synthetic interaction streams for demos and tests.

A "user" types a phrase with Gaussian inter-key intervals and moves the
pointer along smooth paths; an "impostor" types slower and more erratically
and clicks all over the screen.
"""
import time

import numpy as np

from behavesec.events import (
    ClickButton, ClickEvent, MoveEvent, ScrollDirection, ScrollEvent, TypingEvent,
)

DEFAULT_TEXT = "the quick brown fox jumps over the lazy dog "
IMPOSTOR_TEXT = "Pack my BOX with five dozen liquor jugs! "


def typing_events(n, mean_ms=120.0, std_ms=20.0, text=DEFAULT_TEXT, start=None, seed=None):
    """
    Generates `n` typing events cycling through `text`, with intervals drawn
    from N(mean_ms, std_ms) and clipped to at least 1 ms.
    """
    rng = np.random.default_rng(seed)
    timestamp = time.time() if start is None else float(start)
    intervals = np.clip(rng.normal(mean_ms, std_ms, size=n), 1.0, None)

    events = []
    previous_key = None
    for i in range(n):
        key = text[i % len(text)]
        interval = float(intervals[i]) if i > 0 else 0.0
        timestamp += interval / 1000.0
        events.append(TypingEvent(key=key, previous_key=previous_key, interval_ms=interval, timestamp=timestamp))
        previous_key = key
    return events


def pointer_events(n, viewport=(1920, 1080), start=None, seed=None, erratic=False):
    """
    Generates a pointer stream: mostly moves along gently curving paths,
    with occasional clicks and scrolls.
    """
    rng = np.random.default_rng(seed)
    width, height = viewport
    timestamp = time.time() if start is None else float(start)

    x, y = width / 2, height / 2
    heading = rng.uniform(0, 2 * np.pi)
    events = []
    for i in range(n):
        interval = float(rng.normal(40.0, 30.0 if erratic else 8.0))
        interval = max(interval, 1.0) if i > 0 else 0.0
        timestamp += interval / 1000.0
        roll = rng.random()

        if roll < 0.08:
            if erratic:
                x, y = rng.uniform(0, width), rng.uniform(0, height)
                button = ClickButton(rng.choice(["left", "middle", "right"]))
            else:
                button = ClickButton.LEFT if rng.random() < 0.9 else ClickButton.RIGHT
            events.append(ClickEvent(button=button, x=float(x), y=float(y), interval_ms=interval, timestamp=timestamp))
        elif roll < 0.15:
            delta = float(rng.normal(300.0 if erratic else 100.0, 60.0 if erratic else 10.0))
            direction = ScrollDirection.DOWN if delta > 0 else ScrollDirection.UP
            events.append(ScrollEvent(direction=direction, delta_y=delta, x=float(x), y=float(y),
                                      interval_ms=interval, timestamp=timestamp))
        else:
            heading += rng.normal(0.0, 1.2 if erratic else 0.15)
            step = abs(rng.normal(25.0 if erratic else 12.0, 10.0 if erratic else 2.0))
            dx, dy = step * np.cos(heading), step * np.sin(heading)
            x = float(np.clip(x + dx, 0, width))
            y = float(np.clip(y + dy, 0, height))
            events.append(MoveEvent(x=x, y=y, dx=float(dx), dy=float(dy), interval_ms=interval, timestamp=timestamp))
    return events


def user_session(n, start=None, seed=None):
    """Typing followed by pointer activity for one consistent user."""
    half = n // 2
    typing = typing_events(half, start=start, seed=seed)
    pointer = pointer_events(n - half, start=typing[-1].timestamp if typing else start, seed=seed)
    return typing + pointer


def impostor_session(n, start=None, seed=None):
    half = n // 2
    typing = typing_events(half, mean_ms=320.0, std_ms=140.0, text=IMPOSTOR_TEXT, start=start, seed=seed)
    pointer = pointer_events(n - half, start=typing[-1].timestamp if typing else start, seed=seed, erratic=True)
    return typing + pointer
