"""Tests for alert fan-out, history bounds and the typed helpers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import MINT, make_launch
from pumpguard.alert_bus import AlertBus
from pumpguard.models import AlertKind, Direction, MonitoredToken, Severity


async def _publish(bus: AlertBus, n: int = 1) -> None:
    for i in range(n):
        await bus.publish(AlertKind.SUSPICIOUS, Severity.LOW, f"t{i}", "m")


class TestPublish:

    @pytest.mark.asyncio
    async def test_ids_are_monotonic(self, bus):
        first = await bus.publish(AlertKind.RUG, Severity.CRITICAL, "a", "b")
        second = await bus.publish(AlertKind.RUG, Severity.CRITICAL, "a", "b")
        assert second.id == first.id + 1

    @pytest.mark.asyncio
    async def test_signal_defaults_to_kind(self, bus):
        alert = await bus.publish(AlertKind.WHALE_BUY, Severity.MEDIUM, "t", "m")
        assert alert.signal == "whale_buy"

    @pytest.mark.asyncio
    async def test_subscribers_receive_in_order(self, bus):
        received = []
        bus.subscribe(received.append)
        await _publish(bus, 3)
        assert [a.title for a in received] == ["t0", "t1", "t2"]

    @pytest.mark.asyncio
    async def test_async_subscriber_awaited(self, bus):
        sink = AsyncMock()
        bus.subscribe(sink)
        alert = await bus.publish(AlertKind.RUG, Severity.CRITICAL, "a", "b")
        sink.assert_awaited_once_with(alert)

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_isolated(self, bus):
        received = []
        bus.subscribe(MagicMock(side_effect=RuntimeError("sink down")))
        bus.subscribe(AsyncMock(side_effect=RuntimeError("sink down")))
        bus.subscribe(received.append)
        await _publish(bus)
        assert len(received) == 1
        assert len(bus) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus):
        received = []
        unsubscribe = bus.subscribe(received.append)
        assert bus.subscriber_count == 1
        unsubscribe()
        unsubscribe()
        await _publish(bus)
        assert received == []
        assert bus.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_publishers_keep_order(self, bus):
        received = []
        bus.subscribe(received.append)
        await asyncio.gather(*(
            bus.publish(AlertKind.SUSPICIOUS, Severity.LOW, str(i), "m") for i in range(20)
        ))
        ids = [a.id for a in received]
        assert ids == sorted(ids)


class TestHistory:

    @pytest.mark.asyncio
    async def test_recent_newest_first(self, bus):
        await _publish(bus, 5)
        assert [a.title for a in bus.get_recent_alerts(2)] == ["t4", "t3"]
        assert bus.get_recent_alerts(0) == []

    @pytest.mark.asyncio
    async def test_overflow_keeps_newest(self):
        bus = AlertBus(history_cap=10, history_keep=5)
        await _publish(bus, 11)
        assert len(bus) == 5
        assert bus.get_recent_alerts(1)[0].title == "t10"


class TestHelpers:

    @pytest.mark.asyncio
    async def test_new_token(self, bus):
        alert = await bus.alert_new_token(make_launch())
        assert alert.kind == AlertKind.NEW_TOKEN
        assert alert.severity == Severity.LOW
        assert alert.mint == MINT
        assert "100.00 SOL" in alert.message

    @pytest.mark.asyncio
    async def test_rug(self, bus):
        token = MonitoredToken(mint=MINT, symbol="PEPE", suspicion_score=90)
        alert = await bus.alert_rug(token, "High suspicion score reached")
        assert alert.kind == AlertKind.RUG
        assert alert.severity == Severity.CRITICAL
        assert alert.payload["suspicion_score"] == 90

    @pytest.mark.asyncio
    async def test_suspicious_titles(self, bus):
        token = MonitoredToken(mint=MINT)
        critical = await bus.alert_suspicious(token, "dev_dump", Severity.CRITICAL, "x")
        medium = await bus.alert_suspicious(token, "large_sell", Severity.MEDIUM, "y")
        assert critical.title == "RUG PULL WARNING - CRITICAL"
        assert medium.title == "Suspicious Activity"
        assert critical.kind == medium.kind == AlertKind.SUSPICIOUS
        assert critical.signal == "dev_dump"

    @pytest.mark.asyncio
    async def test_whale(self, bus):
        alert = await bus.alert_whale(
            Direction.SELL, "wallet1", {"symbol": "PEPE", "mint": MINT}, 75.0, 1e6
        )
        assert alert.kind == AlertKind.WHALE_SELL
        assert alert.title == "Whale DUMPING"
        assert alert.mint == MINT
        assert "75.00 SOL" in alert.message
