"""
Cooperation with an externally managed transaction.

A transaction manager binds a ConnectionHolder for a ConnectionSource to the
current thread. While bound, get_connection() hands out that connection and
reference-counts it instead of acquiring a new one. Deadlines set on the
holder shorten statement timeouts (see utils.apply_timeout).
"""

import math
import threading
import time
from typing import Any

from dbtemplate.core.exceptions import TransactionTimedOutError

_resources = threading.local()


class ConnectionHolder:
    def __init__(self, connection: Any) -> None:
        self.connection = connection
        self.reference_count = 0
        self._deadline: float | None = None
        self._lock = threading.Lock()

    # --- reference counting ---

    def requested(self) -> None:
        with self._lock:
            self.reference_count += 1

    def released(self) -> None:
        with self._lock:
            if self.reference_count > 0:
                self.reference_count -= 1

    @property
    def is_open(self) -> bool:
        return self.reference_count > 0

    # --- deadline ---

    def set_timeout_seconds(self, seconds: float) -> None:
        self._deadline = time.monotonic() + seconds

    def clear_timeout(self) -> None:
        self._deadline = None

    @property
    def has_timeout(self) -> bool:
        return self._deadline is not None

    def time_to_live_seconds(self) -> int:
        """Whole seconds left (rounded up); raises once the deadline has passed."""
        if self._deadline is None:
            raise ValueError("No timeout specified for this holder")
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise TransactionTimedOutError(
                f"Transaction timed out: deadline was {-remaining:.3f}s ago"
            )
        return max(1, math.ceil(remaining))


def _map() -> dict[int, tuple[Any, ConnectionHolder]]:
    m = getattr(_resources, "map", None)
    if m is None:
        m = {}
        _resources.map = m
    return m


def bind_resource(source: Any, holder: ConnectionHolder) -> None:
    m = _map()
    if id(source) in m:
        raise ValueError(f"A connection is already bound for {source!r} on this thread")
    m[id(source)] = (source, holder)


def unbind_resource(source: Any) -> ConnectionHolder:
    m = _map()
    try:
        return m.pop(id(source))[1]
    except KeyError:
        raise ValueError(f"No connection bound for {source!r} on this thread") from None


def get_resource(source: Any) -> ConnectionHolder | None:
    entry = _map().get(id(source))
    return entry[1] if entry is not None else None
