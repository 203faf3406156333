import asyncio
from typing import Sequence

from usageledger.models import UsageReport
from usageledger.quantize import Timestamp
from usageledger.store.base import UsageLedger


class AsyncUsageLedger:
    """
    AsyncUsageLedger lets asyncio request handlers use a blocking
    ledger without stalling the event loop. Each call runs in a
    worker thread; the wrapped ledger still serializes the actual
    store access.
    """

    def __init__(self, ledger: "UsageLedger") -> "None":
        self._ledger = ledger

    @property
    def ledger(self) -> "UsageLedger":
        return self._ledger

    async def record_usage(self, keys: "Sequence[str]") -> "None":
        await asyncio.to_thread(self._ledger.record_usage, keys)

    async def view_usage(
        self,
        start: "Timestamp",
        end: "Timestamp",
    ) -> "UsageReport":
        return await asyncio.to_thread(self._ledger.view_usage, start, end)

    async def close(self) -> "None":
        await asyncio.to_thread(self._ledger.close)
