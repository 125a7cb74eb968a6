"""
Canonical interaction events.

One frozen dataclass per event kind. Raw records coming from the capture
layer are resolved into one of these variants exactly once, in parse_event(),
so the rest of the package never branches on kind strings or duck-typed payloads.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from behavesec.logger import logger


class EventKind(Enum):
    TYPING = "typing"
    CLICK = "click"
    MOVE = "move"
    SCROLL = "scroll"


class ClickButton(Enum):
    LEFT = "left"
    MIDDLE = "middle"
    RIGHT = "right"


class ScrollDirection(Enum):
    UP = "up"
    DOWN = "down"


# Codes used for the previous/next event-kind context features
_KIND_CODES = {
    "typing": 0.1,
    "left_click": 0.2,
    "middle_click": 0.25,
    "right_click": 0.3,
    "move": 0.4,
    "scroll_up": 0.5,
    "scroll_down": 0.6,
}


@dataclass(frozen=True)
class BaseEvent:
    """Common shape for all events: wall-clock timestamp (s) and interval since the previous event (ms)."""
    kind: EventKind = field(init=False)
    timestamp: float = field(default_factory=time.time)
    interval_ms: float = 0.0

    @property
    def subkind(self) -> str:
        return self.kind.value

    @property
    def kind_code(self) -> float:
        return _KIND_CODES[self.subkind]

    def counter_keys(self) -> Tuple[str, ...]:
        if self.subkind == self.kind.value:
            return (self.kind.value,)
        return (self.kind.value, self.subkind)

    def to_record(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "interval_ms": self.interval_ms,
        }


@dataclass(frozen=True)
class TypingEvent(BaseEvent):
    key: str = ""
    previous_key: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", EventKind.TYPING)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"key": self.key, "previous_key": self.previous_key})
        return base


@dataclass(frozen=True)
class ClickEvent(BaseEvent):
    button: ClickButton = ClickButton.LEFT
    x: float = 0.0
    y: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "kind", EventKind.CLICK)

    @property
    def subkind(self) -> str:
        return f"{self.button.value}_click"

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"button": self.button.value, "x": self.x, "y": self.y})
        return base


@dataclass(frozen=True)
class MoveEvent(BaseEvent):
    x: float = 0.0
    y: float = 0.0
    dx: float = 0.0
    dy: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "kind", EventKind.MOVE)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({"x": self.x, "y": self.y, "dx": self.dx, "dy": self.dy})
        return base


@dataclass(frozen=True)
class ScrollEvent(BaseEvent):
    direction: ScrollDirection = ScrollDirection.DOWN
    delta_y: float = 0.0
    x: float = 0.0
    y: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "kind", EventKind.SCROLL)

    @property
    def subkind(self) -> str:
        return f"scroll_{self.direction.value}"

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "direction": self.direction.value,
            "delta_y": self.delta_y,
            "x": self.x,
            "y": self.y,
        })
        return base


Event = Union[TypingEvent, ClickEvent, MoveEvent, ScrollEvent]

# Payload fields each kind must carry (interval_ms is required for every kind)
REQUIRED_FIELDS = {
    "typing": ("key",),
    "click": ("button", "x", "y"),
    "move": ("x", "y", "dx", "dy"),
    "scroll": ("delta_y", "x", "y"),
}


def _missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value == ""


def _number(record, name) -> float:
    value = float(record[name])
    if not math.isfinite(value):
        raise ValueError(f"{name} is not finite")
    return value


def parse_event(record: Mapping[str, Any]) -> Optional[Event]:
    """
    Validates one raw record and resolves it into an Event variant.

    Returns None (and logs a warning) when the kind is unknown or a required
    field is absent or malformed. A missing timestamp defaults to now.
    """
    kind = record.get("kind")
    if kind not in REQUIRED_FIELDS:
        logger.warning(f"Skipping event with unknown kind: {kind!r}")
        return None

    missing = [name for name in REQUIRED_FIELDS[kind] + ("interval_ms",) if _missing(record.get(name))]
    if missing:
        logger.warning(f"Skipping {kind} event missing fields: {', '.join(missing)}")
        return None

    try:
        common = {"interval_ms": _number(record, "interval_ms")}
        if common["interval_ms"] < 0:
            raise ValueError("interval_ms is negative")
        if not _missing(record.get("timestamp")):
            common["timestamp"] = _number(record, "timestamp")

        if kind == "typing":
            previous_key = record.get("previous_key")
            return TypingEvent(
                key=str(record["key"]),
                previous_key=None if _missing(previous_key) else str(previous_key),
                **common,
            )
        if kind == "click":
            return ClickEvent(
                button=ClickButton(str(record["button"]).lower()),
                x=_number(record, "x"),
                y=_number(record, "y"),
                **common,
            )
        if kind == "move":
            return MoveEvent(
                x=_number(record, "x"),
                y=_number(record, "y"),
                dx=_number(record, "dx"),
                dy=_number(record, "dy"),
                **common,
            )

        delta_y = _number(record, "delta_y")
        direction = record.get("direction")
        if _missing(direction):
            direction = ScrollDirection.DOWN if delta_y > 0 else ScrollDirection.UP
        else:
            direction = ScrollDirection(str(direction).lower())
        return ScrollEvent(
            direction=direction,
            delta_y=delta_y,
            x=_number(record, "x"),
            y=_number(record, "y"),
            **common,
        )
    except (TypeError, ValueError) as e:
        logger.warning(f"Skipping malformed {kind} event: {e}")
        return None


def parse_events(records):
    """Parses an iterable of raw records, dropping the invalid ones."""
    events = []
    for record in records:
        event = parse_event(record)
        if event is not None:
            events.append(event)
    return events
