"""
Alert distribution.

Detectors publish through a single ``AlertBus``; every subscriber (the
Telegram notifier, the store, an API consumer) receives every alert in
emission order.  A subscriber that raises is logged and skipped: it cannot
stop delivery to the others nor the recording of the alert in history.

History is a bounded buffer: beyond ``ALERT_HISTORY_CAP`` entries only the
newest ``ALERT_HISTORY_KEEP`` are retained.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, Union

from .constants import ALERT_HISTORY_CAP, ALERT_HISTORY_KEEP
from .models import (
    Alert,
    AlertKind,
    Direction,
    MonitoredToken,
    Severity,
    TokenLaunch,
)

logger = logging.getLogger(__name__)

AlertCallback = Callable[[Alert], Union[None, Awaitable[None]]]


class AlertBus:
    def __init__(
        self,
        *,
        history_cap: int = ALERT_HISTORY_CAP,
        history_keep: int = ALERT_HISTORY_KEEP,
    ) -> None:
        self._history_cap = history_cap
        self._history_keep = history_keep
        self._history: list[Alert] = []
        self._subscribers: list[AlertCallback] = []
        self._ids = itertools.count(1)
        self._state_lock = threading.Lock()
        self._dispatch_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: AlertCallback) -> Callable[[], None]:
        """Register *callback*; returns a callable that unregisters it."""
        with self._state_lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._state_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._state_lock:
            return len(self._subscribers)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(
        self,
        kind: AlertKind,
        severity: Severity,
        title: str,
        message: str,
        *,
        signal: str = "",
        mint: str = "",
        payload: Optional[dict[str, Any]] = None,
    ) -> Alert:
        """Record an alert and deliver it to every subscriber."""
        async with self._dispatch_lock:
            with self._state_lock:
                alert = Alert(
                    id=next(self._ids),
                    kind=kind,
                    severity=severity,
                    signal=signal or kind.value,
                    mint=mint,
                    title=title,
                    message=message,
                    payload=payload or {},
                )
                self._history.append(alert)
                if len(self._history) > self._history_cap:
                    self._history = self._history[-self._history_keep:]
                subscribers = list(self._subscribers)

            for callback in subscribers:
                try:
                    result = callback(alert)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("Alert subscriber %r failed for alert #%d", callback, alert.id)
        return alert

    def get_recent_alerts(self, limit: int = 50) -> list[Alert]:
        """Newest first."""
        with self._state_lock:
            recent = self._history[-limit:] if limit > 0 else []
        return list(reversed(recent))

    def __len__(self) -> int:
        with self._state_lock:
            return len(self._history)

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    async def alert_new_token(self, launch: TokenLaunch) -> Alert:
        liquidity = (
            f"{launch.initial_liquidity:.2f} SOL" if launch.initial_liquidity else "Unknown"
        )
        return await self.publish(
            AlertKind.NEW_TOKEN,
            Severity.LOW,
            "New Token Detected",
            f"Token: {launch.name} ({launch.symbol})\n"
            f"Mint: {launch.mint}\n"
            f"Creator: {launch.creator}\n"
            f"Liquidity: {liquidity}",
            mint=launch.mint,
            payload=launch.model_dump(mode="json"),
        )

    async def alert_rug(self, token: MonitoredToken, reason: str) -> Alert:
        return await self.publish(
            AlertKind.RUG,
            Severity.CRITICAL,
            "RUG PULL DETECTED - CRITICAL",
            f"Token: {token.symbol}\nMint: {token.mint}\nReason: {reason}",
            mint=token.mint,
            payload={
                "reason": reason,
                "suspicion_score": token.suspicion_score,
                "current_liquidity": token.current_liquidity,
            },
        )

    async def alert_suspicious(
        self,
        token: MonitoredToken,
        signal: str,
        severity: Severity,
        reason: str,
    ) -> Alert:
        title = (
            f"RUG PULL WARNING - {severity.value.upper()}"
            if severity == Severity.CRITICAL
            else "Suspicious Activity"
        )
        return await self.publish(
            AlertKind.SUSPICIOUS,
            severity,
            title,
            f"Token: {token.symbol}\nMint: {token.mint}\nReason: {reason}",
            signal=signal,
            mint=token.mint,
            payload={"reason": reason, "suspicion_score": token.suspicion_score},
        )

    async def alert_whale(
        self,
        direction: Direction,
        wallet: str,
        token_info: dict[str, Any],
        amount_native: float,
        amount_token: float,
    ) -> Alert:
        action = "ACCUMULATING" if direction == Direction.BUY else "DUMPING"
        kind = AlertKind.WHALE_BUY if direction == Direction.BUY else AlertKind.WHALE_SELL
        return await self.publish(
            kind,
            Severity.MEDIUM,
            f"Whale {action}",
            f"Wallet: {wallet}\n"
            f"Token: {token_info.get('symbol', 'UNKNOWN')}\n"
            f"Amount: {amount_native:.2f} SOL ({amount_token:,.0f} tokens)",
            mint=str(token_info.get("mint", "")),
            payload={
                "wallet": wallet,
                "token": token_info,
                "amount_native": amount_native,
                "amount_token": amount_token,
                "direction": direction.value,
            },
        )
