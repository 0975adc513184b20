"""Tests for the aiosqlite-backed store."""

from __future__ import annotations

from contextlib import asynccontextmanager

import pytest

from conftest import MINT, TRADER, make_launch, make_movement
from pumpguard.models import Alert, AlertKind, Direction, MonitoredWallet, Severity
from pumpguard.store import SQLiteStore


@asynccontextmanager
async def _open(tmp_path):
    store = SQLiteStore(str(tmp_path / "nested" / "pumpguard.db"))
    try:
        yield store
    finally:
        await store.close()


class TestTokens:

    @pytest.mark.asyncio
    async def test_save_and_get(self, tmp_path):
        async with _open(tmp_path) as db:
            await db.save_token(make_launch())
            row = await db.get_token(MINT)
        assert row["symbol"] == "PEPE"
        assert row["initial_liquidity"] == 100.0
        assert row["is_rugged"] == 0

    @pytest.mark.asyncio
    async def test_missing_token(self, tmp_path):
        async with _open(tmp_path) as db:
            assert await db.get_token("nope") is None

    @pytest.mark.asyncio
    async def test_mark_rugged(self, tmp_path):
        async with _open(tmp_path) as db:
            await db.save_token(make_launch())
            await db.mark_rugged(MINT, "Liquidity dropped 80.0%")
            [row] = await db.get_rugged_tokens()
        assert row["mint"] == MINT
        assert row["rug_reason"] == "Liquidity dropped 80.0%"


class TestTransactions:

    @pytest.mark.asyncio
    async def test_duplicate_signature_ignored(self, tmp_path):
        mv = make_movement(Direction.SELL, amount_native=2.0, signature="s1")
        async with _open(tmp_path) as db:
            await db.save_transaction(mv)
            await db.save_transaction(mv)
            rows = await db.get_transactions_for_token(MINT)
        assert len(rows) == 1
        assert rows[0]["wallet"] == TRADER
        assert rows[0]["type"] == "sell"


class TestWalletsAndAlerts:

    @pytest.mark.asyncio
    async def test_whales(self, tmp_path):
        async with _open(tmp_path) as db:
            await db.save_wallet(MonitoredWallet(address="w1", total_volume=120.0, is_whale=True))
            await db.save_wallet(MonitoredWallet(address="w2", total_volume=1.0))
            whales = await db.get_whales()
        assert [w["address"] for w in whales] == ["w1"]
        assert whales[0]["total_volume_sol"] == 120.0

    @pytest.mark.asyncio
    async def test_alert_ids_may_repeat_across_runs(self, tmp_path):
        alert = Alert(id=1, kind=AlertKind.RUG, severity=Severity.CRITICAL,
                      title="t", message="m", mint=MINT, payload={"reason": "x"})
        async with _open(tmp_path) as db:
            await db.save_alert(alert)
            await db.save_alert(alert)
            await db.save_token(make_launch())
            stats = await db.get_stats()
        assert stats == {"total_tokens": 1, "rugged_tokens": 0, "whales": 0, "alerts": 2}


class TestFailures:

    @pytest.mark.asyncio
    async def test_unwritable_path_does_not_raise(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = SQLiteStore(str(blocker / "db.sqlite"))
        await store.save_token(make_launch())
        assert await store.get_token(MINT) is None
        assert await store.get_stats() == {
            "total_tokens": 0, "rugged_tokens": 0, "whales": 0, "alerts": 0,
        }
        await store.close()
