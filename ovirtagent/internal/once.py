"""Thread-safe initialize-once cell."""

import threading
from collections.abc import Callable


class OnceCell[T]:
    """Holds a value computed at most once, on first access.

    Concurrent first callers block on a lock; exactly one runs the factory.
    A factory that raises leaves the cell empty so the next caller retries.
    """

    __slots__ = ("_factory", "_lock", "_value", "_set")

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._value: T | None = None
        self._set = False

    def get(self) -> T:
        if self._set:
            return self._value  # type: ignore[return-value]
        with self._lock:
            if not self._set:
                self._value = self._factory()
                self._set = True
        return self._value  # type: ignore[return-value]

    @property
    def initialized(self) -> bool:
        return self._set

    def peek(self) -> T | None:
        """Current value without triggering initialization."""
        return self._value if self._set else None

    def reset(self) -> T | None:
        """Drop the cached value and return it (for closing)."""
        with self._lock:
            value, self._value, self._set = self._value, None, False
        return value
