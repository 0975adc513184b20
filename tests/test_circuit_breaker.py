"""Tests for the async circuit breaker."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import ManualClock
from pumpguard.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


async def _fail():
    raise RuntimeError("down")


@pytest.fixture
def clock():
    return ManualClock(0.0)


@pytest.fixture
def cb(clock):
    return CircuitBreaker("rpc", failure_threshold=3, recovery_timeout=10.0,
                          success_threshold=2, clock=clock)


async def _trip(cb):
    for _ in range(cb.failure_threshold):
        with pytest.raises(RuntimeError):
            await cb.call(_fail)


class TestCircuitBreaker:

    @pytest.mark.asyncio
    async def test_passes_through_when_closed(self, cb):
        func = AsyncMock(return_value=5)
        assert await cb.call(func, "a", k=1) == 5
        func.assert_awaited_once_with("a", k=1)
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, cb):
        await _trip(cb)
        assert cb.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError) as exc_info:
            await cb.call(AsyncMock())
        assert exc_info.value.circuit_name == "rpc"
        assert cb.rejected == 1

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, cb):
        with pytest.raises(RuntimeError):
            await cb.call(_fail)
        await cb.call(AsyncMock(return_value=None))
        assert cb.status()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_half_open_recovers(self, cb, clock):
        await _trip(cb)
        clock.advance(10.0)
        await cb.call(AsyncMock())
        assert cb.state == CircuitState.HALF_OPEN
        await cb.call(AsyncMock())
        assert cb.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, cb, clock):
        await _trip(cb)
        clock.advance(11.0)
        with pytest.raises(RuntimeError):
            await cb.call(_fail)
        assert cb.state == CircuitState.OPEN

    def test_status(self, cb):
        status = cb.status()
        assert status == {
            "state": "closed",
            "failure_count": 0,
            "total_calls": 0,
            "rejected_calls": 0,
            "recovery_timeout_s": 10.0,
        }
