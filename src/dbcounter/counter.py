"""Thread-safe in-memory counter keyed by string."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator

from dbcounter.models import CounterValue, kind_of


class Counter:
    """An in-memory map from string key to a numeric counter value.

    Every operation holds an internal lock, so increments may come from any
    thread while a coordinator enumerates or reloads. Keys are enumerated in
    insertion order.

    Example:
        ```python
        counter = Counter()
        counter.inc("requests", 1)
        counter.inc("latency", Duration(1_500_000))
        counter.value_at("requests")  # 1
        ```
    """

    def __init__(self) -> None:
        self._values: dict[str, CounterValue] = {}
        self._lock = threading.Lock()

    def inc(self, key: str, delta: CounterValue) -> CounterValue:
        """Add ``delta`` to the value at ``key``, creating it if absent.

        Args:
            key: Counter key.
            delta: Amount to add. Must be compatible with the current value.

        Returns:
            The new value.

        Raises:
            SerializationError: If ``delta`` is not a storable counter value.
            TypeError: If ``delta`` cannot be added to the current value.
        """
        kind_of(delta)
        with self._lock:
            current = self._values.get(key)
            updated = delta if current is None else current + delta
            self._values[key] = updated
            return updated

    def value_at(self, key: str) -> CounterValue | None:
        """Return the value at ``key``, or None when the key is not present."""
        with self._lock:
            return self._values.get(key)

    def for_each(self, visitor: Callable[[str, CounterValue], bool]) -> None:
        """Call ``visitor`` for every pair until it returns False.

        The visitor runs on a copy taken under the lock, so it may call back
        into the counter.
        """
        for key, value in self.snapshot():
            if not visitor(key, value):
                break

    def snapshot(self) -> list[tuple[str, CounterValue]]:
        """Return a point-in-time copy of all pairs in insertion order."""
        with self._lock:
            return list(self._values.items())

    def remove(self, key: str) -> None:
        """Remove ``key``; absent keys are ignored."""
        with self._lock:
            self._values.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())
