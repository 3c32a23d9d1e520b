"""
backend/metrics.py

Lightweight thread-safe counters for the ingestion adapter.
No external dependencies — uses Python's threading.Lock.

Usage:
    from backend.metrics import METRICS
    METRICS.records_received.inc()
    print(METRICS.as_dict())
"""

import threading


class Counter:
    """A thread-safe integer counter."""

    __slots__ = ("_value", "_lock")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:  # pragma: no cover
        return f"Counter({self._value})"


class Metrics:
    """Singleton holding all ingestion counters."""

    def __init__(self) -> None:
        self.records_received: Counter = Counter()
        """Decoder records handed to the adapter."""

        self.records_parsed_ok: Counter = Counter()
        """Records that produced a Packet."""

        self.records_skipped: Counter = Counter()
        """Records dropped because a required identifying field was missing."""

        self.values_defaulted: Counter = Counter()
        """Optional fields replaced by their default because they were malformed."""

    def as_dict(self) -> dict:
        """Return all counters as a plain dict (safe for JSON serialisation)."""
        return {
            "records_received": self.records_received.value,
            "records_parsed_ok": self.records_parsed_ok.value,
            "records_skipped": self.records_skipped.value,
            "values_defaulted": self.values_defaulted.value,
        }

    def reset_all(self) -> None:
        """Reset every counter to zero (useful in tests)."""
        for attr in vars(self).values():
            if isinstance(attr, Counter):
                attr.reset()


# Module-level singleton
METRICS = Metrics()
