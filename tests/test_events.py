# tests/test_events.py
# Covers the event-source boundary: variant resolution, required-field
# validation (skip, never fabricate) and the timestamp default.
import math
import time

from behavesec.events import (
    ClickButton, ClickEvent, EventKind, MoveEvent, ScrollDirection, ScrollEvent, TypingEvent,
    parse_event, parse_events,
)


def test_typing_record_resolves_to_typing_event():
    ev = parse_event({"kind": "typing", "key": "a", "previous_key": "b", "interval_ms": 110, "timestamp": 5.0})
    assert isinstance(ev, TypingEvent)
    assert ev.kind is EventKind.TYPING
    assert ev.key == "a" and ev.previous_key == "b"
    assert ev.interval_ms == 110.0
    assert ev.timestamp == 5.0


def test_click_and_scroll_carry_subkind_tags():
    click = parse_event({"kind": "click", "button": "RIGHT", "x": 10, "y": 20, "interval_ms": 50})
    assert isinstance(click, ClickEvent)
    assert click.button is ClickButton.RIGHT
    assert click.subkind == "right_click"
    assert click.counter_keys() == ("click", "right_click")

    scroll = parse_event({"kind": "scroll", "delta_y": -120, "x": 0, "y": 0, "interval_ms": 30})
    assert isinstance(scroll, ScrollEvent)
    assert scroll.direction is ScrollDirection.UP  # derived from the delta sign
    assert scroll.subkind == "scroll_up"


def test_move_event_round_trips_through_record():
    ev = MoveEvent(x=100.0, y=200.0, dx=3.0, dy=-4.0, interval_ms=16.0, timestamp=12.5)
    assert parse_event(ev.to_record()) == ev


def test_missing_required_field_is_skipped():
    assert parse_event({"kind": "click", "button": "left", "x": 10, "interval_ms": 50}) is None
    assert parse_event({"kind": "typing", "interval_ms": 50}) is None
    assert parse_event({"kind": "move", "x": 1, "y": 1, "dx": 0, "dy": 0}) is None
    # pandas fills absent cells with NaN
    assert parse_event({"kind": "move", "x": 1, "y": float("nan"), "dx": 0, "dy": 0, "interval_ms": 5}) is None


def test_unknown_kind_and_malformed_values_are_skipped():
    assert parse_event({"kind": "teleport", "interval_ms": 1}) is None
    assert parse_event({"kind": "click", "button": "fourth", "x": 1, "y": 1, "interval_ms": 1}) is None
    assert parse_event({"kind": "typing", "key": "a", "interval_ms": -5}) is None
    assert parse_event({"kind": "scroll", "delta_y": math.inf, "x": 1, "y": 1, "interval_ms": 1}) is None


def test_missing_timestamp_defaults_to_now():
    before = time.time()
    ev = parse_event({"kind": "typing", "key": "x", "interval_ms": 100})
    after = time.time()
    assert before <= ev.timestamp <= after


def test_parse_events_drops_invalid_records():
    records = [
        {"kind": "typing", "key": "a", "interval_ms": 0},
        {"kind": "typing", "interval_ms": 10},
        {"kind": "click", "button": "middle", "x": 5, "y": 5, "interval_ms": 10},
    ]
    events = parse_events(records)
    assert [e.subkind for e in events] == ["typing", "middle_click"]
