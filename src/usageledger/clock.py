import time
from typing import Protocol


class Clock(Protocol):
    """
    Clock is the wall-clock source used for bucket computation.

    Implementations must return non-decreasing unix timestamps
    (seconds) for buckets to be meaningful across calls.
    """

    def now(self) -> "float": ...


class SystemClock:
    def now(self) -> "float":
        return time.time()
