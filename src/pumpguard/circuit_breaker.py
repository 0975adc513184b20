"""
Async circuit breaker guarding the Solana RPC endpoint.

States
------
CLOSED    - calls pass through; consecutive failures are counted.
OPEN      - calls fail fast with ``CircuitOpenError`` until the recovery
            timeout elapses.
HALF_OPEN - probe calls are let through; enough successes close the
            circuit, any failure re-opens it.

A burst of RPC failures (rate limiting, node outage) would otherwise turn
every incoming log event into three slow retries.  With the breaker open
those events are dropped immediately, which is the same outcome the
resolvers already produce for a transient miss.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is attempted against an open circuit."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Circuit '{name}' is open, RPC call rejected")
        self.circuit_name = name


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        success_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()
        self.calls = 0
        self.rejected = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    async def call(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run *func* through the breaker.  Raises ``CircuitOpenError`` when OPEN."""
        async with self._lock:
            if (
                self._state == CircuitState.OPEN
                and self._clock() - (self._opened_at or 0.0) >= self.recovery_timeout
            ):
                self._transition(CircuitState.HALF_OPEN)
            state = self._state

        if state == CircuitState.OPEN:
            self.rejected += 1
            raise CircuitOpenError(self.name)

        self.calls += 1
        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self._record(success=False)
            raise
        await self._record(success=True)
        return result

    async def _record(self, *, success: bool) -> None:
        async with self._lock:
            if success:
                if self._state == CircuitState.HALF_OPEN:
                    self._successes += 1
                    if self._successes >= self.success_threshold:
                        self._failures = 0
                        self._successes = 0
                        self._transition(CircuitState.CLOSED)
                else:
                    self._failures = 0
                return

            self._failures += 1
            self._successes = 0
            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._failures >= self.failure_threshold
            ):
                self._opened_at = self._clock()
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state != self._state:
            logger.warning(
                "CircuitBreaker '%s': %s → %s (failures=%d)",
                self.name,
                self._state.value,
                new_state.value,
                self._failures,
            )
            self._state = new_state

    def status(self) -> dict[str, Any]:
        """Serialisable status for the health endpoint."""
        return {
            "state": self._state.value,
            "failure_count": self._failures,
            "total_calls": self.calls,
            "rejected_calls": self.rejected,
            "recovery_timeout_s": self.recovery_timeout,
        }
