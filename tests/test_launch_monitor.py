"""Tests for new-token launch filtering, alerting and publication."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import CREATOR, MINT, FailingStore, make_launch
from pumpguard.launch_monitor import LaunchMonitor
from pumpguard.models import AlertKind, LaunchFilters


def _monitor(bus, store, clock, *, launch=None, **kwargs):
    resolver = MagicMock()
    resolver.resolve_launch = AsyncMock(return_value=launch)
    return LaunchMonitor(resolver, bus, store, clock=clock, **kwargs)


class TestHandleLaunch:

    @pytest.mark.asyncio
    async def test_admitted_launch_is_recorded_and_alerted(self, bus, store, clock):
        launch = make_launch()
        monitor = _monitor(bus, store, clock, launch=launch)
        received = []
        monitor.subscribe(received.append)

        result = await monitor.handle_launch("create-sig")

        assert result == launch
        assert received == [launch]
        assert store.tokens[MINT]["symbol"] == "PEPE"
        [alert] = bus.get_recent_alerts()
        assert alert.kind == AlertKind.NEW_TOKEN
        assert monitor.get_token(MINT) == launch
        assert monitor.get_stats()["tokens_detected"] == 1

    @pytest.mark.asyncio
    async def test_unresolved_launch_is_dropped(self, bus, store, clock):
        monitor = _monitor(bus, store, clock, launch=None)
        assert await monitor.handle_launch("sig") is None
        assert store.tokens == {}
        assert bus.get_recent_alerts() == []

    @pytest.mark.asyncio
    async def test_async_subscriber_awaited(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        seen = AsyncMock()
        monitor.subscribe(seen)
        await monitor.process_launch(make_launch())
        seen.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_subscriber_isolated(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        received = []
        monitor.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        monitor.subscribe(received.append)
        await monitor.process_launch(make_launch())
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        received = []
        unsubscribe = monitor.subscribe(received.append)
        unsubscribe()
        await monitor.process_launch(make_launch())
        assert received == []


class TestFilters:

    @pytest.mark.asyncio
    async def test_blacklisted_creator_rejected(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        monitor.blacklist_creator(CREATOR)
        assert await monitor.process_launch(make_launch()) is None
        assert monitor.get_stats()["tokens_filtered"] == 1
        assert store.tokens == {}

    @pytest.mark.asyncio
    async def test_whitelist_admits_only_listed(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        monitor.whitelist_creator("SomeoneElse1111111111111111111111111111111")
        assert await monitor.process_launch(make_launch()) is None
        monitor.whitelist_creator(CREATOR)
        assert await monitor.process_launch(make_launch()) is not None

    @pytest.mark.asyncio
    async def test_liquidity_bounds(self, bus, store, clock):
        monitor = _monitor(bus, store, clock,
                           filters=LaunchFilters(min_liquidity_sol=1.0, max_liquidity_sol=50.0))
        assert await monitor.process_launch(make_launch(initial_liquidity=0.5)) is None
        assert await monitor.process_launch(make_launch(initial_liquidity=80.0)) is None
        assert await monitor.process_launch(make_launch(initial_liquidity=10.0)) is not None

    def test_set_filter(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        monitor.set_filter("min_liquidity_sol", 2.5)
        assert monitor.filters.min_liquidity_sol == 2.5

    def test_set_filter_unknown_key(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        with pytest.raises(KeyError):
            monitor.set_filter("max_holders", 3)

    def test_set_filter_bad_value(self, bus, store, clock):
        monitor = _monitor(bus, store, clock)
        with pytest.raises(ValueError):
            monitor.set_filter("min_liquidity_sol", "lots")
        assert monitor.filters.min_liquidity_sol == 0.0


class TestAlertRateLimit:

    @pytest.mark.asyncio
    async def test_cap_per_minute(self, bus, store, clock):
        monitor = _monitor(bus, store, clock, max_alerts_per_minute=2)
        received = []
        monitor.subscribe(received.append)
        for i in range(3):
            await monitor.process_launch(make_launch(mint=f"mint{i}"))

        assert len(bus.get_recent_alerts()) == 2
        assert len(received) == 3
        assert monitor.get_stats()["alerts_suppressed"] == 1

        clock.advance(60)
        await monitor.process_launch(make_launch(mint="mint9"))
        assert len(bus.get_recent_alerts()) == 3

    @pytest.mark.asyncio
    async def test_zero_means_unlimited(self, bus, store, clock):
        monitor = _monitor(bus, store, clock, max_alerts_per_minute=0)
        for i in range(20):
            await monitor.process_launch(make_launch(mint=f"mint{i}"))
        assert len(bus.get_recent_alerts()) == 20

    @pytest.mark.asyncio
    async def test_alerts_disabled(self, bus, store, clock):
        monitor = _monitor(bus, store, clock, alert_new_tokens=False)
        await monitor.process_launch(make_launch())
        assert bus.get_recent_alerts() == []
        assert MINT in store.tokens


class TestQueries:

    @pytest.mark.asyncio
    async def test_recent_tokens_newest_first(self, bus, store, clock):
        monitor = _monitor(bus, store, clock, max_alerts_per_minute=0)
        for i in range(3):
            await monitor.process_launch(make_launch(mint=f"mint{i}"))
        assert [t.mint for t in monitor.get_recent_tokens(2)] == ["mint2", "mint1"]
        assert monitor.get_recent_tokens(0) == []

    def test_unknown_token(self, bus, store, clock):
        assert _monitor(bus, store, clock).get_token("nope") is None


class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_failing_store_still_publishes(self, bus, clock):
        monitor = _monitor(bus, FailingStore(), clock)
        received = []
        monitor.subscribe(received.append)
        assert await monitor.process_launch(make_launch()) is not None
        assert len(received) == 1
        assert len(bus.get_recent_alerts()) == 1
