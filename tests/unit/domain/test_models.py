"""Unit tests for domain models."""

from __future__ import annotations

import pytest

from cursor_stream.domain.errors import InvalidArgumentError
from cursor_stream.domain.models import (
    Direction,
    KeyRange,
    Record,
    StreamOptions,
    StreamState,
    normalize_range,
)
from cursor_stream.infra.config import StreamSettings


class TestDirection:
    @pytest.mark.parametrize(
        "direction, forward, unique",
        [
            (Direction.NEXT, True, False),
            (Direction.NEXT_UNIQUE, True, True),
            (Direction.PREV, False, False),
            (Direction.PREV_UNIQUE, False, True),
        ],
    )
    def test_flags(self, direction, forward, unique):
        assert direction.is_forward is forward
        assert direction.is_unique is unique

    def test_coerce_string(self):
        assert Direction.coerce("prevunique") is Direction.PREV_UNIQUE

    def test_coerce_none_defaults_to_next(self):
        assert Direction.coerce(None) is Direction.NEXT

    def test_coerce_unknown_raises(self):
        with pytest.raises(InvalidArgumentError, match="direction must be one of"):
            Direction.coerce("sideways")


class TestKeyRange:
    def test_unbounded_contains_everything(self):
        key_range = KeyRange()
        assert key_range.is_unbounded
        assert key_range.contains(-100)
        assert key_range.contains(100)

    def test_closed_bounds_are_inclusive(self):
        key_range = normalize_range(1, 5)
        assert key_range.contains(1)
        assert key_range.contains(5)
        assert not key_range.contains(0)
        assert not key_range.contains(6)

    def test_open_bounds_are_exclusive(self):
        key_range = normalize_range(1, 5, True, True)
        assert not key_range.contains(1)
        assert key_range.contains(3)
        assert not key_range.contains(5)

    def test_open_flag_dropped_for_missing_bound(self):
        assert normalize_range(None, 5, True, False) == KeyRange(upper=5)

    def test_inverted_bounds_raise(self):
        with pytest.raises(InvalidArgumentError, match="greater than"):
            normalize_range(5, 1)

    def test_incomparable_bounds_raise(self):
        with pytest.raises(InvalidArgumentError, match="not comparable"):
            normalize_range(1, "z")

    def test_equal_bounds_with_open_side_is_empty(self):
        assert normalize_range(3, 3, lower_open=True).is_empty
        assert not normalize_range(3, 3).is_empty

    def test_resume_forward_opens_lower_bound(self):
        key_range = normalize_range(1, 5).resume_after(3, Direction.NEXT_UNIQUE)
        assert key_range == KeyRange(lower=3, upper=5, lower_open=True)

    def test_resume_backward_opens_upper_bound(self):
        key_range = normalize_range(1, 5).resume_after(3, Direction.PREV)
        assert key_range == KeyRange(lower=1, upper=3, upper_open=True)

    def test_from_mapping(self):
        assert KeyRange.from_mapping({"lower": "a", "upper_open": True}) == KeyRange(lower="a")

    def test_from_mapping_rejects_unknown_keys(self):
        with pytest.raises(InvalidArgumentError, match="unknown range keys"):
            KeyRange.from_mapping({"lowerOpen": True})

    def test_immutable(self):
        key_range = KeyRange()
        with pytest.raises(AttributeError):
            key_range.lower = 1  # type: ignore[misc]


class TestRecord:
    def test_to_dict(self):
        assert Record(key=b"k", value={"n": 1}).to_dict() == {"key": b"k", "value": {"n": 1}}

    def test_equality_by_value(self):
        assert Record(1, "a") == Record(1, "a")


class TestStreamState:
    @pytest.mark.parametrize("state", [StreamState.ENDED, StreamState.ERRORED, StreamState.CLOSED])
    def test_terminal_states(self, state):
        assert state.is_terminal

    @pytest.mark.parametrize(
        "state",
        [StreamState.IDLE, StreamState.OPENING, StreamState.ADVANCING, StreamState.EMITTING, StreamState.DRAINING],
    )
    def test_running_states(self, state):
        assert not state.is_terminal


class TestStreamOptions:
    def test_defaults(self):
        options = StreamOptions()
        assert options.key_range == KeyRange()
        assert options.direction is Direction.NEXT
        assert options.reopen_on_timeout is True
        assert options.high_water_mark == 16
        assert options.max_reopens is None

    def test_direction_string_is_coerced(self):
        assert StreamOptions(direction="prev").direction is Direction.PREV  # type: ignore[arg-type]

    def test_invalid_high_water_mark(self):
        with pytest.raises(InvalidArgumentError, match="high_water_mark"):
            StreamOptions(high_water_mark=0)

    def test_invalid_max_reopens(self):
        with pytest.raises(InvalidArgumentError, match="max_reopens"):
            StreamOptions(max_reopens=-1)

    def test_range_must_be_key_range(self):
        with pytest.raises(InvalidArgumentError, match="KeyRange"):
            StreamOptions(key_range=(1, 5))  # type: ignore[arg-type]

    def test_from_settings_uses_settings_defaults(self):
        settings = StreamSettings(high_water_mark=4, reopen_on_timeout=False, max_reopens=2)
        options = StreamOptions.from_settings(settings)
        assert options.high_water_mark == 4
        assert options.reopen_on_timeout is False
        assert options.max_reopens == 2

    def test_from_settings_overrides_win(self):
        settings = StreamSettings(high_water_mark=4)
        options = StreamOptions.from_settings(
            settings,
            {"range": {"lower": 2}, "direction": "prev", "high_water_mark": 1},
        )
        assert options.key_range == KeyRange(lower=2)
        assert options.direction is Direction.PREV
        assert options.high_water_mark == 1

    def test_from_settings_accepts_key_range_instance(self):
        key_range = normalize_range(1, 2)
        options = StreamOptions.from_settings(StreamSettings(), {"key_range": key_range})
        assert options.key_range is key_range
