import asyncio
from datetime import timedelta

import pytest
from prometheus_client import CollectorRegistry

from usageledger.errors import QueryError
from usageledger.metrics import LedgerMetrics
from usageledger.reporter import UsageReporter
from usageledger.store.aio import AsyncUsageLedger


class FailingLedger:
    """
    A ledger whose queries always fail.
    """

    def record_usage(self, keys: "list[str]") -> "None":
        pass

    def view_usage(self, start: "float", end: "float") -> "dict[str, timedelta]":
        raise QueryError("query failed")

    def close(self) -> "None":
        pass


class StoppingLedger:
    """
    An async ledger that stops the reporter from inside its first query.
    """

    def __init__(self) -> "None":
        self.reporter: "UsageReporter | None" = None
        self.calls = 0

    async def view_usage(
        self, start: "float", end: "float"
    ) -> "dict[str, timedelta]":
        self.calls += 1
        assert self.reporter is not None
        self.reporter.stop()
        return {"v0": timedelta(minutes=5)}


class TestUsageReporter:
    @pytest.mark.asyncio
    async def test_publishes_trailing_window(
        self,
        registry: "CollectorRegistry",
        ledger,
        clock,
    ) -> "None":
        ledger.record_usage(["v0", "v1"])
        clock.advance(300)
        ledger.record_usage(["v0"])

        metrics = LedgerMetrics(registry=registry)
        reporter = UsageReporter(
            AsyncUsageLedger(ledger), metrics, window_seconds=3600, clock=clock
        )

        report = await reporter.report_once()

        assert report == {"v0": timedelta(minutes=10), "v1": timedelta(minutes=5)}
        assert (
            registry.get_sample_value("usage_ledger_key_usage_seconds", {"key": "v0"})
            == 600.0
        )
        assert (
            registry.get_sample_value("usage_ledger_key_usage_seconds", {"key": "v1"})
            == 300.0
        )

    @pytest.mark.asyncio
    async def test_keys_leave_the_window(
        self,
        registry: "CollectorRegistry",
        ledger,
        clock,
    ) -> "None":
        ledger.record_usage(["v0"])

        metrics = LedgerMetrics(registry=registry)
        reporter = UsageReporter(
            AsyncUsageLedger(ledger), metrics, window_seconds=600, clock=clock
        )
        await reporter.report_once()

        clock.advance(3600)
        report = await reporter.report_once()

        assert report == {}
        assert (
            registry.get_sample_value("usage_ledger_key_usage_seconds", {"key": "v0"})
            is None
        )

    @pytest.mark.asyncio
    async def test_query_error_does_not_crash(
        self,
        registry: "CollectorRegistry",
        clock,
    ) -> "None":
        metrics = LedgerMetrics(registry=registry)
        reporter = UsageReporter(AsyncUsageLedger(FailingLedger()), metrics, clock=clock)

        assert await reporter.report_once() is None
        assert (
            registry.get_sample_value(
                "usage_ledger_errors_total", {"operation": "report"}
            )
            == 1.0
        )

    @pytest.mark.asyncio
    async def test_run_stops(
        self,
        registry: "CollectorRegistry",
        clock,
    ) -> "None":
        ledger = StoppingLedger()
        reporter = UsageReporter(
            ledger,
            LedgerMetrics(registry=registry),
            interval_seconds=3600,
            clock=clock,
        )
        ledger.reporter = reporter

        await asyncio.wait_for(reporter.run(), timeout=5)

        assert ledger.calls == 1
