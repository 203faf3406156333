from dataclasses import dataclass
from datetime import timedelta

# key -> accumulated duration over the queried range
UsageReport = dict[str, timedelta]


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """
    UsageRecord represents a single persisted row: the key
    was active at some point during the bucket.
    """

    # unix timestamp marking the start of the bucket
    bucket_timestamp: "int"
    key: "str"
