"""Domain models for cursor streams.

Pure value objects with no infrastructure dependencies.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from cursor_stream.domain.errors import InvalidArgumentError

if TYPE_CHECKING:
    from cursor_stream.infra.config import StreamSettings


class Direction(str, Enum):
    """Traversal order of a cursor, optionally skipping duplicate keys."""

    NEXT = "next"
    NEXT_UNIQUE = "nextunique"
    PREV = "prev"
    PREV_UNIQUE = "prevunique"

    @property
    def is_forward(self) -> bool:
        return self in (Direction.NEXT, Direction.NEXT_UNIQUE)

    @property
    def is_unique(self) -> bool:
        return self in (Direction.NEXT_UNIQUE, Direction.PREV_UNIQUE)

    @classmethod
    def coerce(cls, value: Direction | str | None) -> Direction:
        """Accept a Direction, its string value, or None for the default."""
        if value is None:
            return cls.NEXT
        try:
            return cls(value)
        except ValueError as e:
            allowed = ", ".join(d.value for d in cls)
            raise InvalidArgumentError(f"direction must be one of {allowed}, got {value!r}") from e


class StreamState(str, Enum):
    """States of the cursor stream adapter."""

    IDLE = "idle"
    OPENING = "opening"
    ADVANCING = "advancing"
    EMITTING = "emitting"
    DRAINING = "draining"
    ENDED = "ended"
    ERRORED = "errored"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.ENDED, StreamState.ERRORED, StreamState.CLOSED)


@dataclass(frozen=True)
class KeyRange:
    """Immutable key bounds, each independently open (exclusive) or closed.

    A bound of ``None`` means unbounded on that side. Equal bounds with an
    open side describe an empty range rather than an error, since narrowing
    a range after the last key has been emitted produces exactly that.
    """

    lower: Any = None
    upper: Any = None
    lower_open: bool = False
    upper_open: bool = False

    def __post_init__(self) -> None:
        if self.lower is None or self.upper is None:
            return
        try:
            inverted = self.upper < self.lower
        except TypeError as e:
            raise InvalidArgumentError(
                f"range bounds are not comparable: {self.lower!r}, {self.upper!r}"
            ) from e
        if inverted:
            raise InvalidArgumentError(f"range lower bound {self.lower!r} is greater than upper bound {self.upper!r}")

    @property
    def is_unbounded(self) -> bool:
        return self.lower is None and self.upper is None

    @property
    def is_empty(self) -> bool:
        return (
            self.lower is not None
            and self.upper is not None
            and self.lower == self.upper
            and (self.lower_open or self.upper_open)
        )

    def contains(self, key: Any) -> bool:
        """Return True if *key* falls within the bounds."""
        if self.lower is not None:
            if key < self.lower or (self.lower_open and key == self.lower):
                return False
        if self.upper is not None:
            if key > self.upper or (self.upper_open and key == self.upper):
                return False
        return True

    def resume_after(self, key: Any, direction: Direction) -> KeyRange:
        """Narrow the range so iteration in *direction* continues strictly past *key*."""
        if direction.is_forward:
            return replace(self, lower=key, lower_open=True)
        return replace(self, upper=key, upper_open=True)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> KeyRange:
        """Build a range from ``lower``/``upper``/``lower_open``/``upper_open`` keys."""
        unknown = set(raw) - {"lower", "upper", "lower_open", "upper_open"}
        if unknown:
            raise InvalidArgumentError(f"unknown range keys: {sorted(unknown)}")
        return normalize_range(
            raw.get("lower"),
            raw.get("upper"),
            raw.get("lower_open", False),
            raw.get("upper_open", False),
        )


def normalize_range(
    lower: Any = None,
    upper: Any = None,
    lower_open: bool = False,
    upper_open: bool = False,
) -> KeyRange:
    """Build a KeyRange from explicit bounds.

    Open flags are only meaningful for a present bound and are dropped for
    an absent one, so two ranges describing the same key set compare equal.
    """
    return KeyRange(
        lower=lower,
        upper=upper,
        lower_open=bool(lower_open) and lower is not None,
        upper_open=bool(upper_open) and upper is not None,
    )


@dataclass(frozen=True)
class Record:
    """A single key/value pair emitted to the consumer."""

    key: Any
    value: Any

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        return {"key": self.key, "value": self.value}


_OPTION_NAMES = frozenset({"range", "key_range", "direction", "reopen_on_timeout", "high_water_mark", "max_reopens"})


@dataclass(frozen=True)
class StreamOptions:
    """Construction-time configuration of a cursor stream."""

    key_range: KeyRange = field(default_factory=KeyRange)
    direction: Direction = Direction.NEXT
    reopen_on_timeout: bool = True
    high_water_mark: int = 16
    max_reopens: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.key_range, KeyRange):
            raise InvalidArgumentError(f"range must be a KeyRange, got {type(self.key_range).__name__}")
        if not isinstance(self.direction, Direction):
            object.__setattr__(self, "direction", Direction.coerce(self.direction))
        if not isinstance(self.high_water_mark, int) or self.high_water_mark < 1:
            raise InvalidArgumentError(f"high_water_mark must be a positive integer, got {self.high_water_mark!r}")
        if self.max_reopens is not None and (not isinstance(self.max_reopens, int) or self.max_reopens < 0):
            raise InvalidArgumentError(f"max_reopens must be a non-negative integer, got {self.max_reopens!r}")

    @classmethod
    def from_settings(cls, settings: StreamSettings, overrides: Mapping[str, Any] | None = None) -> StreamOptions:
        """Fill options from *settings*, letting *overrides* win.

        ``range`` may be given as a KeyRange or as a mapping of bounds.
        """
        overrides = dict(overrides or {})
        unknown = set(overrides) - _OPTION_NAMES
        if unknown:
            raise InvalidArgumentError(f"unknown stream options: {sorted(unknown)}")

        key_range = overrides.get("key_range", overrides.get("range"))
        if key_range is None:
            key_range = KeyRange()
        elif isinstance(key_range, Mapping):
            key_range = KeyRange.from_mapping(key_range)

        return cls(
            key_range=key_range,
            direction=Direction.coerce(overrides.get("direction")),
            reopen_on_timeout=bool(overrides.get("reopen_on_timeout", settings.reopen_on_timeout)),
            high_water_mark=overrides.get("high_water_mark", settings.high_water_mark),
            max_reopens=overrides.get("max_reopens", settings.max_reopens),
        )
