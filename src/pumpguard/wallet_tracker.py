"""
Wallet activity and token flow tracking.

Every resolved movement updates two views:

* the acting wallet: cumulative SOL volume, recent movements and whale
  status.  A single movement of at least ``whale_threshold_sol`` marks the
  wallet a whale immediately and raises a ``whale_buy`` / ``whale_sell``
  alert; a wallet whose cumulative volume reaches twice the threshold is
  promoted silently.
* the mint's ``TokenFlow``: buys and sells inside a rolling
  ``accumulation_window_seconds`` window, a running net SOL flow and the
  sets of distinct buyers and sellers.

``analyze_patterns`` runs every ``PATTERN_SCAN_INTERVAL`` seconds.  It logs
accumulation and dump patterns and garbage-collects empty flows; it does not
publish alerts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from .alert_bus import AlertBus
from .constants import WALLET_MOVEMENTS_CAP, WALLET_MOVEMENTS_KEEP
from .keyed_lock import KeyedLock
from .logging_config import short_address
from .models import (
    Direction,
    MonitoredWallet,
    Movement,
    TokenFlow,
    TokenFlowReport,
    TopMover,
    WhaleSummary,
    WhaleThresholds,
)

logger = logging.getLogger(__name__)


class WalletActivityTracker:
    def __init__(
        self,
        alert_bus: AlertBus,
        store: Any,
        *,
        thresholds: Optional[WhaleThresholds] = None,
        pattern_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bus = alert_bus
        self._store = store
        self.thresholds = thresholds or WhaleThresholds()
        self._pattern_interval = pattern_interval
        self._clock = clock

        self._wallets: dict[str, MonitoredWallet] = {}
        self._flows: dict[str, TokenFlow] = {}
        self._locks = KeyedLock()
        self._scan_task: Optional[asyncio.Task] = None

        self.stats = {
            "whales_identified": 0,
            "accumulation_alerts": 0,
            "dump_alerts": 0,
            "total_volume_tracked": 0.0,
        }

    # ------------------------------------------------------------------
    # Movement handling
    # ------------------------------------------------------------------

    async def on_movement(self, mv: Movement) -> None:
        async with self._locks.hold(mv.wallet):
            await self._update_wallet(mv)
        async with self._locks.hold(f"flow:{mv.mint}"):
            self._update_flow(mv)

    async def _update_wallet(self, mv: Movement) -> None:
        threshold = self.thresholds.whale_threshold_sol
        wallet = self._wallets.get(mv.wallet)
        if wallet is None:
            wallet = self._wallets[mv.wallet] = MonitoredWallet(address=mv.wallet)

        if mv.amount_native >= threshold:
            if not wallet.is_whale:
                wallet.is_whale = True
                self.stats["whales_identified"] += 1
                logger.info("New whale identified: %s", short_address(mv.wallet))
            self.stats["total_volume_tracked"] += mv.amount_native

        wallet.total_volume += mv.amount_native
        wallet.recent_movements.append(mv)
        if len(wallet.recent_movements) > WALLET_MOVEMENTS_CAP:
            wallet.recent_movements = wallet.recent_movements[-WALLET_MOVEMENTS_KEEP:]
        wallet.last_activity = self._clock()

        if not wallet.is_whale and wallet.total_volume >= threshold * 2:
            wallet.is_whale = True
            self.stats["whales_identified"] += 1
            logger.info(
                "Wallet promoted to whale status: %s (%.2f SOL volume)",
                short_address(mv.wallet), wallet.total_volume,
            )

        if mv.amount_native >= threshold:
            await self._persist("save_wallet", wallet)
            await self._persist("save_transaction", mv)
            await self._alert_whale(mv)

    async def _alert_whale(self, mv: Movement) -> None:
        token_info = await self._token_info(mv.mint)
        symbol = token_info.get("symbol", "UNKNOWN")
        if mv.direction == Direction.BUY:
            logger.info("Whale BUYING: %.2f SOL of %s", mv.amount_native, symbol)
            if not self.thresholds.alert_on_accumulation:
                return
            self.stats["accumulation_alerts"] += 1
        else:
            logger.info("Whale SELLING: %.2f SOL of %s", mv.amount_native, symbol)
            if not self.thresholds.alert_on_dump:
                return
            self.stats["dump_alerts"] += 1
        await self._bus.alert_whale(
            mv.direction, mv.wallet, token_info, mv.amount_native, mv.amount_token
        )

    async def _token_info(self, mint: str) -> dict[str, Any]:
        try:
            row = await self._store.get_token(mint)
        except Exception:
            logger.warning("Token lookup failed for %s", short_address(mint), exc_info=True)
            row = None
        return dict(row) if row else {"symbol": "UNKNOWN", "mint": mint}

    async def _persist(self, op: str, *args: Any) -> None:
        try:
            await getattr(self._store, op)(*args)
        except Exception:
            logger.warning("Store %s failed", op, exc_info=True)

    def _update_flow(self, mv: Movement) -> None:
        flow = self._flows.get(mv.mint)
        if flow is None:
            flow = self._flows[mv.mint] = TokenFlow(mint=mv.mint)

        if mv.direction == Direction.BUY:
            flow.buys.append(mv)
            flow.net_flow += mv.amount_native
            flow.unique_buyers.add(mv.wallet)
        else:
            flow.sells.append(mv)
            flow.net_flow -= mv.amount_native
            flow.unique_sellers.add(mv.wallet)

        self._prune(flow, self._clock())

    def _prune(self, flow: TokenFlow, now: float) -> None:
        cutoff = now - self.thresholds.accumulation_window_seconds
        flow.buys = [m for m in flow.buys if m.observed_at > cutoff]
        flow.sells = [m for m in flow.sells if m.observed_at > cutoff]

    # ------------------------------------------------------------------
    # Pattern sweep
    # ------------------------------------------------------------------

    async def analyze_patterns(self) -> list[dict[str, Any]]:
        """Log whale accumulation / dump patterns, then drop empty flows.

        Returns the detected patterns so callers can inspect them.
        """
        threshold = self.thresholds.whale_threshold_sol
        min_count = self.thresholds.min_transactions_for_pattern
        now = self._clock()
        patterns: list[dict[str, Any]] = []

        for mint in list(self._flows):
            async with self._locks.hold(f"flow:{mint}"):
                flow = self._flows.get(mint)
                if flow is None:
                    continue
                self._prune(flow, now)
                whale_buys = [m for m in flow.buys if m.amount_native >= threshold]
                whale_sells = [m for m in flow.sells if m.amount_native >= threshold]
                if flow.is_empty():
                    del self._flows[mint]

            if len(whale_buys) >= min_count:
                total = sum(m.amount_native for m in whale_buys)
                patterns.append({"mint": mint, "pattern": "accumulation",
                                 "count": len(whale_buys), "total_sol": total})
                logger.info(
                    "Accumulation pattern detected for %s: %d whale buys totaling %.2f SOL",
                    short_address(mint), len(whale_buys), total,
                )
            if len(whale_sells) >= min_count:
                total = sum(m.amount_native for m in whale_sells)
                patterns.append({"mint": mint, "pattern": "dump",
                                 "count": len(whale_sells), "total_sol": total})
                logger.warning(
                    "Dump pattern detected for %s: %d whale sells totaling %.2f SOL",
                    short_address(mint), len(whale_sells), total,
                )
        return patterns

    async def _scan_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._pattern_interval)
                await self.analyze_patterns()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.warning("Pattern scan loop error: %s", exc)

    async def start(self) -> None:
        """Restore known whales from the store and schedule the pattern scan."""
        await self.load_known_whales()
        if self._scan_task is None or self._scan_task.done():
            self._scan_task = asyncio.create_task(self._scan_loop(), name="pattern_scan")
            logger.info("Pattern scan scheduled (interval=%.0fs)", self._pattern_interval)

    async def stop(self) -> None:
        if self._scan_task and not self._scan_task.done():
            self._scan_task.cancel()
            try:
                await self._scan_task
            except asyncio.CancelledError:
                pass
        self._scan_task = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def load_known_whales(self) -> int:
        try:
            rows = await self._store.get_whales()
        except Exception:
            logger.warning("Could not load known whales", exc_info=True)
            return 0
        for row in rows:
            address = row.get("address")
            if not address or address in self._wallets:
                continue
            self._wallets[address] = MonitoredWallet(
                address=address,
                label=row.get("label") or "",
                total_volume=float(row.get("total_volume_sol") or 0.0),
                is_whale=True,
            )
        if rows:
            logger.info("Loaded %d known whales", len(rows))
        return len(rows)

    async def watch_wallet(self, address: str, label: str = "") -> MonitoredWallet:
        async with self._locks.hold(address):
            wallet = self._wallets.get(address)
            if wallet is None:
                wallet = self._wallets[address] = MonitoredWallet(address=address)
            if label:
                wallet.label = label
            await self._persist("save_wallet", wallet)
        logger.info("Watching wallet %s %s", short_address(address), label)
        return wallet

    def unwatch_wallet(self, address: str) -> bool:
        return self._wallets.pop(address, None) is not None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_whales(self) -> list[WhaleSummary]:
        whales = [
            WhaleSummary(
                address=w.address,
                label=w.label,
                total_volume=w.total_volume,
                last_activity=w.last_activity,
                recent_movements=w.recent_movements[-10:],
            )
            for w in list(self._wallets.values())
            if w.is_whale
        ]
        whales.sort(key=lambda w: w.total_volume, reverse=True)
        return whales

    def get_wallet_activity(self, address: str) -> Optional[MonitoredWallet]:
        return self._wallets.get(address)

    def get_token_flow(self, mint: str) -> Optional[TokenFlowReport]:
        flow = self._flows.get(mint)
        if flow is None:
            return None
        cutoff = self._clock() - self.thresholds.accumulation_window_seconds
        buys = [m for m in flow.buys if m.observed_at > cutoff]
        sells = [m for m in flow.sells if m.observed_at > cutoff]
        return TokenFlowReport(
            mint=mint,
            net_flow=flow.net_flow,
            buy_count=len(buys),
            sell_count=len(sells),
            unique_buyers=len(flow.unique_buyers),
            unique_sellers=len(flow.unique_sellers),
            total_buy_volume=sum(m.amount_native for m in buys),
            total_sell_volume=sum(m.amount_native for m in sells),
        )

    def get_top_movers(self, limit: int = 10) -> list[TopMover]:
        cutoff = self._clock() - self.thresholds.accumulation_window_seconds
        movers = []
        for mint, flow in list(self._flows.items()):
            live = [m for m in flow.buys + flow.sells if m.observed_at > cutoff]
            if not live:
                continue
            movers.append(TopMover(
                mint=mint,
                net_flow=flow.net_flow,
                volume=sum(m.amount_native for m in live),
            ))
        movers.sort(key=lambda m: abs(m.net_flow), reverse=True)
        return movers[:limit]

    def get_stats(self) -> dict[str, Any]:
        return {
            **self.stats,
            "tracked_wallets": len(self._wallets),
            "whales": sum(1 for w in list(self._wallets.values()) if w.is_whale),
            "tokens_tracked": len(self._flows),
            "is_running": self._scan_task is not None and not self._scan_task.done(),
        }
