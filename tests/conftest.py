from collections.abc import Iterator
from datetime import timedelta

import pytest
import structlog
from prometheus_client import CollectorRegistry

from usageledger.store.sqlite import SQLiteUsageLedger

# aligned to both 2s and 5m buckets
START = 1_699_999_800.0


class ManualClock:
    """
    clock that only moves when the test advances it.
    """

    def __init__(self, start: "float" = START) -> "None":
        self._now = start

    def now(self) -> "float":
        return self._now

    def advance(self, seconds: "float") -> "None":
        self._now += seconds


@pytest.fixture(autouse=True)
def _structlog_to_stdlib() -> "Iterator[None]":
    """
    routes structlog through stdlib logging so that events never
    end up on stdout, and keeps loggers uncached so capture_logs
    keeps working.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def clock() -> "ManualClock":
    return ManualClock()


@pytest.fixture()
def ledger(clock: "ManualClock") -> "Iterator[SQLiteUsageLedger]":
    """
    in-memory ledger with the default 5 minute precision.
    """
    ledger = SQLiteUsageLedger(":memory:", precision=timedelta(minutes=5), clock=clock)
    yield ledger
    ledger.close()
