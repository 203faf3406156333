import asyncio
import time

import structlog

from usageledger.clock import Clock, SystemClock
from usageledger.errors import StorageError
from usageledger.metrics import LedgerMetrics
from usageledger.models import UsageReport
from usageledger.store.aio import AsyncUsageLedger

logger = structlog.get_logger()


class UsageReporter:
    """
    UsageReporter is the periodic metering job. Every interval it
    views the ledger over a trailing window ending now and publishes
    the per-key durations through the metrics gauges. The main loop
    runs until stop() is called, sleeping for the configured interval
    between cycles.
    """

    def __init__(
        self,
        ledger: "AsyncUsageLedger",
        metrics: "LedgerMetrics",
        window_seconds: "int" = 3600,
        interval_seconds: "int" = 60,
        clock: "Clock | None" = None,
    ) -> "None":
        self._ledger = ledger
        self._metrics = metrics
        self._window = window_seconds
        self._interval = interval_seconds
        self._clock: "Clock" = clock or SystemClock()
        self._stop_event: "asyncio.Event" = asyncio.Event()

    def stop(self) -> "None":
        """
        signals the reporter loop to stop after the current cycle.
        """
        self._stop_event.set()

    async def run(self) -> "None":
        """
        runs the main reporting loop. Runs until stop() is called.
        """
        while not self._stop_event.is_set():
            await self.report_once()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    async def report_once(self) -> "UsageReport | None":
        """
        runs a single reporting cycle. A failed query is logged and
        counted; it never stops the loop.
        """
        end = self._clock.now()
        start = end - self._window
        cycle_start = time.monotonic()

        logger.info("report_cycle_start", start_time=int(start), end_time=int(end))

        try:
            report = await self._ledger.view_usage(start, end)
        except StorageError:
            logger.exception("report_view_error")
            self._metrics.inc_error("report")
            return None

        self._metrics.publish_report(report)
        self._metrics.observe_duration("report", time.monotonic() - cycle_start)
        logger.info("report_cycle_end", key_count=len(report))
        return report
