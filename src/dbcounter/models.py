"""Domain models for counter values and their stored form.

Stored records carry no native numeric type information, so every value is
written next to a ``valType`` tag and reconstructed from that tag on reload.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, TypeAlias

from dbcounter.exceptions import SerializationError

ID_FIELD = "_id"
KEY_FIELD = "key"
VALUE_FIELD = "val"
VALUE_KIND_FIELD = "valType"

_NANOS_PER_MICROSECOND = 1000

# Stored integers are signed 64-bit.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True, slots=True)
class Duration:
    """A span of time counted in whole nanoseconds.

    Durations add to durations only; mixing them with plain numbers is a
    type error, the same as adding a ``timedelta`` to an ``int``.

    Attributes:
        nanoseconds: Length of the span in nanoseconds.
    """

    nanoseconds: int

    @classmethod
    def from_timedelta(cls, delta: timedelta) -> Duration:
        """Build a Duration from a timedelta (microsecond resolution)."""
        return cls((delta // timedelta(microseconds=1)) * _NANOS_PER_MICROSECOND)

    def to_timedelta(self) -> timedelta:
        """Convert to a timedelta, truncating below one microsecond."""
        return timedelta(microseconds=self.nanoseconds // _NANOS_PER_MICROSECOND)

    def __add__(self, other: object) -> Duration:
        if isinstance(other, Duration):
            return Duration(self.nanoseconds + other.nanoseconds)
        return NotImplemented

    def __int__(self) -> int:
        return self.nanoseconds


CounterValue: TypeAlias = int | float | Duration


class ValueKind(str, Enum):
    """Tag stored in ``valType`` describing how to rebuild a value.

    Attributes:
        INT: Plain integer count.
        FLOAT: Plain real number.
        DURATION: Nanosecond count to be rebuilt as a Duration.
    """

    INT = "int"
    FLOAT = "float"
    DURATION = "duration"


def kind_of(value: Any) -> ValueKind:
    """Return the tag for a value's runtime numeric representation.

    Raises:
        SerializationError: If the value is not a supported counter value or
            is an integer outside the signed 64-bit range.
    """
    # bool is an int subclass but never a count
    if isinstance(value, bool):
        raise SerializationError(f"Unsupported counter value type: {type(value).__name__}")
    if isinstance(value, Duration):
        _check_int64(value.nanoseconds)
        return ValueKind.DURATION
    if isinstance(value, int):
        _check_int64(value)
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    raise SerializationError(f"Unsupported counter value type: {type(value).__name__}")


def _check_int64(number: int) -> None:
    if not INT64_MIN <= number <= INT64_MAX:
        raise SerializationError(f"Integer {number} does not fit in 64 bits")


def is_duration(value: CounterValue) -> bool:
    """Check if a value is a Duration; durations only add to durations."""
    return isinstance(value, Duration)


def encode_value(value: CounterValue) -> int | float:
    """Reduce a counter value to the plain number written to storage.

    Raises:
        SerializationError: If the value cannot be stored.
    """
    kind_of(value)
    if isinstance(value, Duration):
        return value.nanoseconds
    return value


def decode_value(raw: Any, tag: str | None) -> CounterValue:
    """Rebuild a counter value from its stored number and ``valType`` tag.

    A missing tag means the stored number is used as-is.

    Raises:
        SerializationError: If the stored number is not numeric or the tag
            is not a known ValueKind.
    """
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        raise SerializationError(f"Stored value is not numeric: {raw!r}")
    if tag is None:
        return raw
    try:
        kind = ValueKind(tag)
    except ValueError:
        raise SerializationError(f"Unknown value kind tag: {tag!r}", tag=tag) from None
    if kind is ValueKind.DURATION:
        return Duration(int(raw))
    if kind is ValueKind.INT:
        return int(raw)
    return raw


@dataclass(frozen=True, slots=True)
class CounterEntry:
    """One persisted counter record.

    Attributes:
        key: Counter key, unique within a collection.
        value: The counter value.
        value_kind: Tag describing the value's representation.
        id: Store-generated identifier, None before insertion.
    """

    key: str
    value: CounterValue
    value_kind: ValueKind
    id: Any = None

    @classmethod
    def for_value(cls, key: str, value: CounterValue) -> CounterEntry:
        """Create a not-yet-inserted entry tagged from the value's runtime kind."""
        return cls(key=key, value=value, value_kind=kind_of(value))

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> CounterEntry:
        """Decode a stored document.

        Raises:
            SerializationError: If the value cannot be rebuilt from its tag.
        """
        tag = document.get(VALUE_KIND_FIELD)
        value = decode_value(document.get(VALUE_FIELD), tag)
        return cls(
            key=document[KEY_FIELD],
            value=value,
            value_kind=kind_of(value),
            id=document.get(ID_FIELD),
        )

    def to_document(self) -> dict[str, Any]:
        """Encode for insertion. The identifier is left to the store."""
        return {
            KEY_FIELD: self.key,
            VALUE_FIELD: encode_value(self.value),
            VALUE_KIND_FIELD: self.value_kind.value,
        }
