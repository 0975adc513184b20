"""
Composition root.

``Pipeline`` subscribes to the program log source, classifies each
notification and spawns one task per resolution path:

  TOKEN_CREATE      → LaunchMonitor.handle_launch → launch channel → watch
  BUY / SELL        → MovementResolver.resolve    → both trackers
  LIQUIDITY_CHANGE  → resolve_liquidity_change    → lifecycle tracker

A record matching both BUY and SELL is resolved once, as a buy.  Each task
runs with the signature bound to the logging context.

``build_pipeline()`` wires the concrete adapters from ``config``.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from .alert_bus import AlertBus
from .classifier import classify
from .launch_monitor import LaunchMonitor
from .lifecycle_tracker import TokenLifecycleTracker
from .logging_config import signature_ctx
from .models import (
    Alert,
    EventKind,
    MonitoredWallet,
    TokenFlowReport,
    TokenLaunch,
    TopMover,
    WatchedTokenSummary,
    WhaleSummary,
)
from .resolver import MovementResolver
from .wallet_tracker import WalletActivityTracker

logger = logging.getLogger(__name__)


class Pipeline:
    def __init__(
        self,
        source: Any,
        resolver: MovementResolver,
        launch_monitor: LaunchMonitor,
        lifecycle: TokenLifecycleTracker,
        wallets: WalletActivityTracker,
        alert_bus: AlertBus,
        store: Any,
        *,
        rpc: Any = None,
        notifier: Any = None,
    ) -> None:
        self.source = source
        self.resolver = resolver
        self.launch_monitor = launch_monitor
        self.lifecycle = lifecycle
        self.wallets = wallets
        self.alert_bus = alert_bus
        self.store = store
        self.rpc = rpc
        self.notifier = notifier

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._unsubscribe_launches = launch_monitor.subscribe(lifecycle.watch)
        self._tasks: set[asyncio.Task] = set()
        self.stats = {"events_received": 0, "events_ignored": 0, "task_errors": 0}

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            return
        await self.wallets.start()
        self.lifecycle.start()
        if self.notifier is not None:
            self.notifier.start()
        self._unsubscribe = self.source.subscribe(self.handle_logs)
        logger.info("PumpGuard pipeline started")

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.lifecycle.stop()
        await self.wallets.stop()
        logger.info("PumpGuard pipeline stopped (%d tasks in flight)", len(self._tasks))

    async def close(self) -> None:
        """Stop, let in-flight resolutions finish, then release adapters."""
        await self.stop()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self.notifier is not None:
            await self.notifier.stop()
        if self.rpc is not None:
            await self.rpc.close()
        await self.store.close()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def handle_logs(self, signature: str, log_lines: list[str]) -> None:
        """Event source handler: classify and fan out without blocking."""
        self.stats["events_received"] += 1
        kinds = classify(log_lines)
        if not kinds:
            self.stats["events_ignored"] += 1
            return

        if EventKind.TOKEN_CREATE in kinds:
            self._spawn(signature, self.launch_monitor.handle_launch(signature))
        if EventKind.BUY in kinds:
            self._spawn(signature, self._handle_trade(signature, EventKind.BUY))
        elif EventKind.SELL in kinds:
            self._spawn(signature, self._handle_trade(signature, EventKind.SELL))
        if EventKind.LIQUIDITY_CHANGE in kinds:
            self._spawn(signature, self._handle_liquidity_change(signature))

    def _spawn(self, signature: str, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.create_task(self._guarded(signature, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, signature: str, coro: Awaitable[Any]) -> None:
        signature_ctx.set(signature)
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            self.stats["task_errors"] += 1
            logger.exception("Event processing failed")

    async def _handle_trade(self, signature: str, kind: EventKind) -> None:
        mv = await self.resolver.resolve(signature, kind)
        if mv is None:
            return
        await self.lifecycle.on_movement(mv)
        await self.wallets.on_movement(mv)

    async def _handle_liquidity_change(self, signature: str) -> None:
        change = await self.resolver.resolve_liquidity_change(signature)
        if change is not None:
            await self.lifecycle.on_liquidity_change(change)

    async def drain(self) -> None:
        """Wait for every spawned task, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def watch_token(self, mint: str) -> WatchedTokenSummary:
        try:
            row = await self.store.get_token(mint)
        except Exception:
            logger.warning("Token lookup failed for %s", mint, exc_info=True)
            row = None
        if row:
            launch = TokenLaunch(
                mint=mint,
                name=row.get("name") or "Unknown",
                symbol=row.get("symbol") or "UNK",
                creator=row.get("creator") or "",
                initial_liquidity=float(row.get("initial_liquidity") or 0.0),
            )
        else:
            launch = self.launch_monitor.get_token(mint) or TokenLaunch(mint=mint)
        self.lifecycle.watch(launch)
        return next(t for t in self.lifecycle.get_watched_tokens() if t.mint == mint)

    def unwatch_token(self, mint: str) -> bool:
        return self.lifecycle.unwatch(mint)

    async def watch_wallet(self, address: str, label: str = "") -> MonitoredWallet:
        return await self.wallets.watch_wallet(address, label)

    def unwatch_wallet(self, address: str) -> bool:
        return self.wallets.unwatch_wallet(address)

    def set_filter(self, key: str, value: Any) -> None:
        self.launch_monitor.set_filter(key, value)

    def blacklist_creator(self, address: str) -> None:
        self.launch_monitor.blacklist_creator(address)

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        return {
            "pipeline": {**self.stats, "running": self.running,
                         "in_flight": len(self._tasks),
                         "resolution_misses": self.resolver.misses},
            "launches": self.launch_monitor.get_stats(),
            "tokens": self.lifecycle.get_stats(),
            "wallets": self.wallets.get_stats(),
            "alerts": len(self.alert_bus),
        }

    def get_watched_tokens(self) -> list[WatchedTokenSummary]:
        return self.lifecycle.get_watched_tokens()

    def get_token_details(self, mint: str) -> Optional[dict[str, Any]]:
        return self.lifecycle.get_token_details(mint)

    def get_whales(self) -> list[WhaleSummary]:
        return self.wallets.get_whales()

    def get_token_flow(self, mint: str) -> Optional[TokenFlowReport]:
        return self.wallets.get_token_flow(mint)

    def get_top_movers(self, limit: int = 10) -> list[TopMover]:
        return self.wallets.get_top_movers(limit)

    def get_recent_alerts(self, limit: int = 50) -> list[Alert]:
        return self.alert_bus.get_recent_alerts(limit)


def build_pipeline() -> Pipeline:
    """Wire the production adapters from environment configuration."""
    import config

    from .circuit_breaker import CircuitBreaker
    from .data_sources.log_stream import ProgramLogStream
    from .data_sources.solana_rpc import SolanaRpcClient, derive_bonding_curve
    from .models import LaunchFilters, RugThresholds, WhaleThresholds
    from .store import SQLiteStore

    rpc = SolanaRpcClient(
        config.SOLANA_RPC_ENDPOINT,
        timeout=config.REQUEST_TIMEOUT,
        circuit_breaker=CircuitBreaker(
            "solana_rpc",
            failure_threshold=config.CB_FAILURE_THRESHOLD,
            recovery_timeout=config.CB_RECOVERY_TIMEOUT,
        ),
    )
    store = SQLiteStore(config.DB_PATH)
    bus = AlertBus()
    bus.subscribe(store.save_alert)

    notifier = None
    if config.TELEGRAM_BOT_TOKEN and config.TELEGRAM_CHAT_ID:
        from .telegram_notifier import TelegramNotifier

        notifier = TelegramNotifier(config.TELEGRAM_BOT_TOKEN, config.TELEGRAM_CHAT_ID)
        bus.subscribe(notifier.enqueue)
    else:
        logger.info("Telegram not configured, alerts stay in-process")

    resolver = MovementResolver(
        rpc.get_transaction,
        trade_settle_delay=config.TRADE_SETTLE_DELAY,
        create_settle_delay=config.CREATE_SETTLE_DELAY,
    )
    launch_monitor = LaunchMonitor(
        resolver, bus, store,
        filters=LaunchFilters(min_liquidity_sol=config.MIN_LIQUIDITY_SOL),
        alert_new_tokens=config.ALERT_NEW_TOKENS,
        max_alerts_per_minute=config.MAX_ALERTS_PER_MINUTE,
    )
    lifecycle = TokenLifecycleTracker(
        bus, store,
        thresholds=RugThresholds.from_config(),
        balance_probe=rpc.get_balance,
        curve_address=partial(derive_bonding_curve, program_id=config.PUMP_PROGRAM_ID),
        health_interval=config.HEALTH_CHECK_INTERVAL,
        max_concurrent_probes=config.MAX_CONCURRENT_PROBES,
    )
    wallets = WalletActivityTracker(
        bus, store,
        thresholds=WhaleThresholds.from_config(),
        pattern_interval=config.PATTERN_SCAN_INTERVAL,
    )
    source = ProgramLogStream(config.SOLANA_WS_ENDPOINT, config.PUMP_PROGRAM_ID)

    return Pipeline(
        source, resolver, launch_monitor, lifecycle, wallets, bus, store,
        rpc=rpc, notifier=notifier,
    )
