from datetime import datetime, timedelta, timezone

import pytest

from usageledger.quantize import bucket_duration, precision_seconds, to_unix, truncate


class TestPrecisionSeconds:
    def test_whole_seconds(self) -> "None":
        assert precision_seconds(timedelta(minutes=5)) == 300
        assert precision_seconds(timedelta(seconds=2)) == 2

    @pytest.mark.parametrize(
        "precision",
        [timedelta(0), timedelta(seconds=-5), timedelta(milliseconds=1500)],
    )
    def test_rejects_invalid(self, precision: "timedelta") -> "None":
        with pytest.raises(ValueError):
            precision_seconds(precision)


class TestTruncate:
    def test_floors_to_bucket_start(self) -> "None":
        assert truncate(1_699_999_800, 300) == 1_699_999_800
        assert truncate(1_699_999_899.9, 300) == 1_699_999_800
        assert truncate(1_700_000_100, 300) == 1_700_000_100

    def test_anchored_to_epoch(self) -> "None":
        # bucket starts depend only on the precision
        assert truncate(7, 5) == 5
        assert truncate(0, 5) == 0
        assert truncate(-1, 5) == -5

    def test_datetime_and_unix_agree(self) -> "None":
        dt = datetime(2024, 1, 1, 12, 3, 27, tzinfo=timezone.utc)
        assert truncate(dt, 300) == truncate(dt.timestamp(), 300)
        assert truncate(dt, 300) == int(
            datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc).timestamp()
        )


class TestHelpers:
    def test_to_unix(self) -> "None":
        dt = datetime(1970, 1, 1, 0, 1, tzinfo=timezone.utc)
        assert to_unix(dt) == 60.0
        assert to_unix(42) == 42.0

    def test_bucket_duration(self) -> "None":
        assert bucket_duration(0, 300) == timedelta(0)
        assert bucket_duration(3, 300) == timedelta(minutes=15)
