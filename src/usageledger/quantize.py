import math
from datetime import datetime, timedelta
from typing import Union

Timestamp = Union[datetime, int, float]


def precision_seconds(precision: "timedelta") -> "int":
    """
    converts a bucket width into whole seconds. Buckets are stored
    as integer unix seconds, so sub-second or fractional widths
    would make neighbouring buckets collide.
    """
    seconds = precision.total_seconds()
    if seconds <= 0 or seconds != int(seconds):
        raise ValueError(
            f"precision must be a positive whole number of seconds, got {precision}"
        )
    return int(seconds)


def to_unix(ts: "Timestamp") -> "float":
    """
    converts a datetime or unix timestamp into unix seconds.
    Naive datetimes are interpreted as local time.
    """
    if isinstance(ts, datetime):
        return ts.timestamp()
    return float(ts)


def truncate(ts: "Timestamp", precision: "int") -> "int":
    """
    maps an instant to the start of its bucket. Buckets are anchored
    to the epoch, so every process using the same precision agrees
    on the boundaries.
    """
    return math.floor(to_unix(ts) / precision) * precision


def bucket_duration(count: "int", precision: "int") -> "timedelta":
    """
    total duration covered by count distinct buckets.
    """
    return timedelta(seconds=count * precision)
