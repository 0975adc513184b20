"""
New-token launch monitoring.

Creation events are resolved into ``TokenLaunch`` facts, checked against the
creator blacklist / whitelist and the liquidity bounds, recorded, persisted
and announced with a ``new_token`` alert.  Admitted launches are then handed
to every launch subscriber; the lifecycle tracker subscribes so that each
new token is watched from its first trade.

``new_token`` alerts are capped at ``max_alerts_per_minute`` over a sliding
60 second window (0 disables the cap).  A launch over the cap is still
recorded and published, only the alert is skipped.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections import OrderedDict, deque
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from .alert_bus import AlertBus
from .constants import MAX_TRACKED_TOKENS
from .logging_config import short_address
from .models import LaunchFilters, TokenLaunch
from .resolver import MovementResolver

logger = logging.getLogger(__name__)

LaunchCallback = Callable[[TokenLaunch], Union[None, Awaitable[None]]]

_RATE_WINDOW_SECONDS = 60.0


class LaunchMonitor:
    def __init__(
        self,
        resolver: MovementResolver,
        alert_bus: AlertBus,
        store: Any,
        *,
        filters: Optional[LaunchFilters] = None,
        alert_new_tokens: bool = True,
        max_alerts_per_minute: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._resolver = resolver
        self._bus = alert_bus
        self._store = store
        self.filters = filters or LaunchFilters()
        self.alert_new_tokens = alert_new_tokens
        self.max_alerts_per_minute = max_alerts_per_minute
        self._clock = clock

        self._detected: OrderedDict[str, tuple[TokenLaunch, float]] = OrderedDict()
        self._alert_times: deque[float] = deque()
        self._subscribers: list[LaunchCallback] = []
        self.stats = {"tokens_detected": 0, "tokens_filtered": 0,
                      "alerts_sent": 0, "alerts_suppressed": 0}

    # ------------------------------------------------------------------
    # Launch channel
    # ------------------------------------------------------------------

    def subscribe(self, callback: LaunchCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    async def _publish(self, launch: TokenLaunch) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(launch)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Launch subscriber %r failed for %s", callback, launch.mint)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def set_filter(self, key: str, value: Any) -> None:
        """Update one filter.  Raises ``KeyError`` for an unknown filter name."""
        if key not in LaunchFilters.model_fields:
            raise KeyError(key)
        data = self.filters.model_dump()
        data[key] = value
        try:
            self.filters = LaunchFilters.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"invalid value for {key}: {value!r}") from exc
        logger.info("Filter updated: %s = %r", key, value)

    def blacklist_creator(self, address: str) -> None:
        self.filters.blacklisted_creators.add(address)
        logger.info("Creator blacklisted: %s", address)

    def whitelist_creator(self, address: str) -> None:
        self.filters.whitelisted_creators.add(address)
        logger.info("Creator whitelisted: %s", address)

    # ------------------------------------------------------------------
    # Handling
    # ------------------------------------------------------------------

    async def handle_launch(self, signature: str) -> Optional[TokenLaunch]:
        launch = await self._resolver.resolve_launch(signature)
        if launch is None:
            return None
        return await self.process_launch(launch)

    async def process_launch(self, launch: TokenLaunch) -> Optional[TokenLaunch]:
        if not self.filters.admits(launch):
            self.stats["tokens_filtered"] += 1
            logger.debug("Launch %s filtered out", short_address(launch.mint))
            return None

        self.stats["tokens_detected"] += 1
        logger.info(
            "New token: %s (%s) mint=%s creator=%s liquidity=%.2f SOL",
            launch.name, launch.symbol, short_address(launch.mint),
            short_address(launch.creator), launch.initial_liquidity,
        )

        try:
            await self._store.save_token(launch)
        except Exception:
            logger.warning("Store save_token failed for %s", short_address(launch.mint), exc_info=True)
        self._detected[launch.mint] = (launch, self._clock())
        self._detected.move_to_end(launch.mint)
        while len(self._detected) > MAX_TRACKED_TOKENS:
            self._detected.popitem(last=False)

        if self.alert_new_tokens:
            if self._take_alert_slot():
                self.stats["alerts_sent"] += 1
                await self._bus.alert_new_token(launch)
            else:
                self.stats["alerts_suppressed"] += 1
                logger.debug("new_token alert rate limit hit, skipping %s", launch.mint)

        await self._publish(launch)
        return launch

    def _take_alert_slot(self) -> bool:
        if self.max_alerts_per_minute <= 0:
            return True
        now = self._clock()
        while self._alert_times and now - self._alert_times[0] >= _RATE_WINDOW_SECONDS:
            self._alert_times.popleft()
        if len(self._alert_times) >= self.max_alerts_per_minute:
            return False
        self._alert_times.append(now)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, int]:
        return {**self.stats, "tokens_tracked": len(self._detected)}

    def get_recent_tokens(self, limit: int = 50) -> list[TokenLaunch]:
        """Most recently detected first."""
        if limit <= 0:
            return []
        return [launch for launch, _ in reversed(self._detected.values())][:limit]

    def get_token(self, mint: str) -> Optional[TokenLaunch]:
        entry = self._detected.get(mint)
        return entry[0] if entry else None
