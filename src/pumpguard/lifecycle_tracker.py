"""
Token lifecycle tracking and rug-pull scoring.

Every watched mint owns a ``MonitoredToken``.  Resolved sells are scored
against four rules; each finding raises the token's suspicion score and is
published as a ``suspicious`` alert tagged with its signal:

  dev_dump       creator sells >= 20% of supply       critical   +50
  dev_sell       any other creator sell (if enabled)  medium     +20
  rapid_selling  >= 3 sells within 60s draining more
                 than 30% of initial liquidity        high       +30
  large_sell     one sell above suspicious_sell_percent
                 of current liquidity                 medium     +15

A score of 80 or more escalates to ``trigger_rug``, as does a liquidity
probe showing a drop of at least ``lp_removal_percent`` or an observed LP
withdrawal larger than that share of current liquidity.  A token is rugged
at most once and the score never decreases.

A background sweep probes the bonding-curve balance of each watched token
every ``HEALTH_CHECK_INTERVAL`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from .alert_bus import AlertBus
from .constants import (
    HEALTH_CHECK_MIN_GAP_SECONDS,
    MAX_DEV_SELL_PERCENT,
    MAX_TRACKED_TOKENS,
    RAPID_SELL_LIQUIDITY_FRACTION,
    RAPID_SELL_MIN_COUNT,
    RAPID_SELL_WINDOW_SECONDS,
    RUG_SUSPICION_CEILING,
    SCORE_DEV_DUMP,
    SCORE_DEV_SELL,
    SCORE_LARGE_SELL,
    SCORE_RAPID_SELLING,
    SELL_HISTORY_LIMIT,
)
from .keyed_lock import KeyedLock
from .logging_config import short_address
from .models import (
    Direction,
    LiquidityChange,
    MonitoredToken,
    Movement,
    RugThresholds,
    Severity,
    TokenLaunch,
    WatchedTokenSummary,
)

logger = logging.getLogger(__name__)

BalanceProbe = Callable[[str], Awaitable[Optional[float]]]


class TokenLifecycleTracker:
    def __init__(
        self,
        alert_bus: AlertBus,
        store: Any,
        *,
        thresholds: Optional[RugThresholds] = None,
        balance_probe: Optional[BalanceProbe] = None,
        curve_address: Optional[Callable[[str], str]] = None,
        health_interval: float = 30.0,
        max_concurrent_probes: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bus = alert_bus
        self._store = store
        self.thresholds = thresholds or RugThresholds()
        self._probe = balance_probe
        self._curve_address = curve_address or (lambda mint: mint)
        self._health_interval = health_interval
        self._max_concurrent_probes = max_concurrent_probes
        self._clock = clock

        self._tokens: dict[str, MonitoredToken] = {}
        self._locks = KeyedLock()
        self._sweep_task: Optional[asyncio.Task] = None
        self.rugs_detected = 0

    # ------------------------------------------------------------------
    # Watch list
    # ------------------------------------------------------------------

    def watch(self, launch: TokenLaunch) -> MonitoredToken:
        """Start tracking *launch*'s mint.  Watching twice keeps the first state."""
        existing = self._tokens.get(launch.mint)
        if existing is not None:
            return existing

        token = MonitoredToken(
            mint=launch.mint,
            symbol=launch.symbol,
            name=launch.name,
            creator_wallet=launch.creator,
            total_supply=launch.total_supply,
            initial_liquidity=launch.initial_liquidity,
            current_liquidity=launch.initial_liquidity,
            last_health_check=self._clock(),
        )
        self._tokens[launch.mint] = token
        logger.debug("Watching %s (%s)", token.symbol, short_address(token.mint))

        if len(self._tokens) > MAX_TRACKED_TOKENS:
            self._evict_oldest()
        return token

    def unwatch(self, mint: str) -> bool:
        return self._tokens.pop(mint, None) is not None

    def is_watched(self, mint: str) -> bool:
        return mint in self._tokens

    def _evict_oldest(self) -> None:
        stale = list(self._tokens)[: len(self._tokens) // 2]
        for mint in stale:
            del self._tokens[mint]
        logger.info("Evicted %d oldest tokens, %d remain", len(stale), len(self._tokens))

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def on_movement(self, mv: Movement) -> None:
        if mv.mint not in self._tokens:
            return

        async with self._locks.hold(mv.mint):
            token = self._tokens.get(mv.mint)
            if token is None:
                return

            if mv.direction == Direction.SELL:
                token.sell_history.append(mv)
                if len(token.sell_history) > SELL_HISTORY_LIMIT:
                    del token.sell_history[:-SELL_HISTORY_LIMIT]
                await self._persist("save_transaction", mv)

                await self._check_dev_sell(token, mv)
                await self._check_rapid_selling(token, mv)
                await self._check_large_sell(token, mv)

            if token.suspicion_score >= RUG_SUSPICION_CEILING and not token.is_rugged:
                await self._rug(token, "High suspicion score reached")

    async def on_liquidity_probe(self, mint: str, current_balance: float) -> None:
        if mint not in self._tokens:
            return
        async with self._locks.hold(mint):
            token = self._tokens.get(mint)
            if token is not None:
                await self._apply_probe(token, current_balance)

    async def on_liquidity_change(self, change: LiquidityChange) -> None:
        for mint in change.mints:
            if mint not in self._tokens:
                continue
            async with self._locks.hold(mint):
                token = self._tokens.get(mint)
                if token is None:
                    continue
                limit = token.current_liquidity * self.thresholds.lp_removal_percent / 100
                if change.native_delta > limit:
                    await self._rug(token, f"LP removed: {change.native_delta:.2f} SOL")

    async def trigger_rug(self, mint: str, reason: str) -> bool:
        """Mark *mint* rugged.  Returns False if unwatched or already rugged."""
        if mint not in self._tokens:
            return False
        async with self._locks.hold(mint):
            token = self._tokens.get(mint)
            if token is None:
                return False
            return await self._rug(token, reason)

    # ------------------------------------------------------------------
    # Rules (caller holds the mint's lock)
    # ------------------------------------------------------------------

    async def _check_dev_sell(self, token: MonitoredToken, mv: Movement) -> None:
        if not token.creator_wallet or mv.wallet != token.creator_wallet:
            return
        sell_percent = mv.amount_token / token.total_supply * 100

        if sell_percent >= MAX_DEV_SELL_PERCENT:
            token.suspicion_score += SCORE_DEV_DUMP
            await self._suspicious(
                token, "dev_dump", Severity.CRITICAL,
                f"Developer sold {sell_percent:.1f}% of supply",
            )
        elif self.thresholds.dev_wallet_sell_alert:
            token.suspicion_score += SCORE_DEV_SELL
            await self._suspicious(
                token, "dev_sell", Severity.MEDIUM,
                f"Developer wallet sold {sell_percent:.2f}% of supply",
            )

    async def _check_rapid_selling(self, token: MonitoredToken, mv: Movement) -> None:
        burst = [
            s for s in token.sell_history
            if mv.observed_at - s.observed_at < RAPID_SELL_WINDOW_SECONDS
        ]
        if len(burst) < RAPID_SELL_MIN_COUNT:
            return
        sold = sum(s.amount_native for s in burst)
        if sold > token.initial_liquidity * RAPID_SELL_LIQUIDITY_FRACTION:
            token.suspicion_score += SCORE_RAPID_SELLING
            await self._suspicious(
                token, "rapid_selling", Severity.HIGH,
                f"{len(burst)} sells in {RAPID_SELL_WINDOW_SECONDS:.0f}s totalling {sold:.2f} SOL",
            )

    async def _check_large_sell(self, token: MonitoredToken, mv: Movement) -> None:
        limit = token.current_liquidity * self.thresholds.suspicious_sell_percent / 100
        if mv.amount_native > limit:
            token.suspicion_score += SCORE_LARGE_SELL
            await self._suspicious(
                token, "large_sell", Severity.MEDIUM,
                f"Large sell: {mv.amount_native:.2f} SOL",
            )

    async def _apply_probe(self, token: MonitoredToken, current_balance: float) -> None:
        previous = token.current_liquidity
        if previous > 0:
            drop = (previous - current_balance) / previous * 100
            if drop >= self.thresholds.lp_removal_percent:
                await self._rug(token, f"Liquidity dropped {drop:.1f}%")
        token.current_liquidity = current_balance

    async def _suspicious(
        self, token: MonitoredToken, signal: str, severity: Severity, reason: str
    ) -> None:
        logger.info(
            "%s on %s (score=%d): %s",
            signal, token.symbol, token.suspicion_score, reason,
        )
        token.alert_count += 1
        await self._bus.alert_suspicious(token, signal, severity, reason)

    async def _rug(self, token: MonitoredToken, reason: str) -> bool:
        if token.is_rugged:
            return False
        token.is_rugged = True
        token.rug_reason = reason
        token.alert_count += 1
        self.rugs_detected += 1
        logger.warning("RUG detected on %s (%s): %s", token.symbol, token.mint, reason)
        await self._persist("mark_rugged", token.mint, reason)
        await self._bus.alert_rug(token, reason)
        return True

    async def _persist(self, op: str, *args: Any) -> None:
        try:
            await getattr(self._store, op)(*args)
        except Exception:
            logger.warning("Store %s failed", op, exc_info=True)

    # ------------------------------------------------------------------
    # Health sweep
    # ------------------------------------------------------------------

    async def run_health_checks(self) -> int:
        """Probe every due token once.  Returns the number of probes issued."""
        if self._probe is None:
            return 0

        now = self._clock()
        due = [
            token for token in list(self._tokens.values())
            if not token.is_rugged
            and not (
                token.last_health_check
                and now - token.last_health_check < HEALTH_CHECK_MIN_GAP_SECONDS
            )
        ]
        if not due:
            return 0

        sem = asyncio.Semaphore(self._max_concurrent_probes)

        async def _probe_one(token: MonitoredToken) -> None:
            token.last_health_check = now
            async with sem:
                try:
                    balance = await self._probe(self._curve_address(token.mint))
                except Exception:
                    logger.debug("Health probe failed for %s", token.mint, exc_info=True)
                    return
            if balance is not None:
                await self.on_liquidity_probe(token.mint, balance)

        await asyncio.gather(*(_probe_one(t) for t in due))
        return len(due)

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._health_interval)
                probed = await self.run_health_checks()
                if probed:
                    logger.debug("Health sweep probed %d tokens", probed)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.warning("Health sweep loop error: %s", exc)

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="health_sweep")
            logger.info("Health sweep scheduled (interval=%.0fs)", self._health_interval)

    async def stop(self) -> None:
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_token(self, mint: str) -> Optional[MonitoredToken]:
        return self._tokens.get(mint)

    def get_watched_tokens(self) -> list[WatchedTokenSummary]:
        return [
            WatchedTokenSummary(
                mint=t.mint,
                symbol=t.symbol,
                name=t.name,
                suspicion_score=t.suspicion_score,
                current_liquidity=t.current_liquidity,
                is_rugged=t.is_rugged,
                alert_count=t.alert_count,
            )
            for t in list(self._tokens.values())
        ]

    def get_token_details(self, mint: str) -> Optional[dict[str, Any]]:
        token = self._tokens.get(mint)
        if token is None:
            return None
        details = token.model_dump(mode="json", exclude={"sell_history"})
        details["recent_sells"] = [
            s.model_dump(mode="json") for s in token.sell_history[-10:]
        ]
        return details

    def get_stats(self) -> dict[str, int]:
        tokens = list(self._tokens.values())
        return {
            "watched_tokens": len(tokens),
            "rugged_tokens": sum(1 for t in tokens if t.is_rugged),
            "rugs_detected": self.rugs_detected,
            "high_risk_tokens": sum(
                1 for t in tokens
                if not t.is_rugged and t.suspicion_score >= RUG_SUSPICION_CEILING // 2
            ),
        }

    def __len__(self) -> int:
        return len(self._tokens)
