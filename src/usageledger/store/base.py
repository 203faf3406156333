from typing import Protocol, Sequence

from usageledger.models import UsageReport
from usageledger.quantize import Timestamp


class UsageLedger(Protocol):
    """
    UsageLedger stands as the common protocol that every
    ledger backend must satisfy.

    A ledger records the epoch-anchored buckets during which
    each key was active and aggregates them into durations
    over an arbitrary time range.
    """

    def record_usage(self, keys: "Sequence[str]") -> "None": ...

    def view_usage(
        self,
        start: "Timestamp",
        end: "Timestamp",
    ) -> "UsageReport": ...

    def close(self) -> "None": ...
