from datetime import timedelta

import pytest

from usageledger.errors import TransactionError
from usageledger.store.aio import AsyncUsageLedger
from usageledger.store.sqlite import SQLiteUsageLedger


class TestAsyncUsageLedger:
    @pytest.mark.asyncio
    async def test_record_and_view(self, ledger, clock) -> "None":
        async_ledger = AsyncUsageLedger(ledger)

        await async_ledger.record_usage(["v0", "v1"])
        clock.advance(300)
        await async_ledger.record_usage(["v0"])

        report = await async_ledger.view_usage(clock.now() - 3600, clock.now())
        assert report == {
            "v0": timedelta(minutes=10),
            "v1": timedelta(minutes=5),
        }

    @pytest.mark.asyncio
    async def test_errors_propagate(self, clock) -> "None":
        async_ledger = AsyncUsageLedger(SQLiteUsageLedger(":memory:", clock=clock))
        await async_ledger.close()

        with pytest.raises(TransactionError):
            await async_ledger.record_usage(["v0"])

    @pytest.mark.asyncio
    async def test_exposes_wrapped_ledger(self, ledger) -> "None":
        assert AsyncUsageLedger(ledger).ledger is ledger
