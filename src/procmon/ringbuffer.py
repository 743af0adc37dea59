# src/procmon/ringbuffer.py
"""Ring buffer for per-process history windows.

Stores the most recent N values (default 100) in submission order.
Eviction is strictly FIFO: pushing into a full buffer drops the oldest value.
"""

from collections import deque


class RingBuffer:
    """Fixed-capacity FIFO window of float values."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError(f"RingBuffer capacity must be >= 1, got {capacity}")
        self._values: deque[float] = deque(maxlen=capacity)

    def __len__(self) -> int:
        """Return number of values in buffer."""
        return len(self._values)

    @property
    def is_empty(self) -> bool:
        """Return True if buffer has no values."""
        return len(self._values) == 0

    @property
    def capacity(self) -> int:
        """Return maximum number of values the buffer can hold."""
        return self._values.maxlen or 0

    @property
    def values(self) -> list[float]:
        """Read-only access to values, oldest first (returns a copy)."""
        return list(self._values)

    @property
    def latest(self) -> float | None:
        """Most recently pushed value, or None when empty."""
        return self._values[-1] if self._values else None

    @property
    def previous(self) -> float | None:
        """Value pushed before the latest one, or None."""
        return self._values[-2] if len(self._values) > 1 else None

    def push(self, value: float) -> None:
        """Add a value, evicting the oldest when full."""
        self._values.append(value)

    def clear(self) -> None:
        """Empty the buffer."""
        self._values.clear()

    def freeze(self) -> tuple[float, ...]:
        """Return immutable copy of buffer contents."""
        return tuple(self._values)
