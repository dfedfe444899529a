"""Timestamp-driven throttling for analyzers called from an external tick."""

from typing import Optional


class TimeGate:
    """
    Lets work through at most once per *interval_ms* of caller time.

    There is no timer: every call compares the supplied timestamp with the
    last accepted one, so the outcome depends only on the timestamps given.
    A timestamp earlier than the last accepted one marks a new session; the
    gate opens and ``rewound`` is set for that call.
    """

    # tolerance for frame clocks that land a hair short of the interval
    EPSILON_MS = 1e-6

    def __init__(self, interval_ms: float):
        self.interval_ms = interval_ms
        self.last_ms: Optional[float] = None
        self.rewound = False

    def ready(self, timestamp_ms: float) -> bool:
        self.rewound = self.last_ms is not None and timestamp_ms < self.last_ms
        if self.last_ms is None or self.rewound:
            self.last_ms = timestamp_ms
            return True
        if timestamp_ms - self.last_ms + self.EPSILON_MS < self.interval_ms:
            return False
        self.last_ms = timestamp_ms
        return True

    def reset(self) -> None:
        self.last_ms = None
        self.rewound = False
