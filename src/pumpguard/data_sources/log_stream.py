"""
Program log subscription over the Solana WebSocket API.

``ProgramLogStream.run()`` keeps a ``logsSubscribe`` subscription for one
program id open, reconnecting with backoff when the socket drops, and hands
every ``(signature, log_lines)`` notification to the registered handlers.
Transactions that failed on-chain are skipped: they move no balances.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import websockets

logger = logging.getLogger(__name__)

LogHandler = Callable[[str, list[str]], Union[None, Awaitable[None]]]

_RECONNECT_BASE = 1.0
_RECONNECT_MAX = 30.0


def parse_notification(message: Any) -> Optional[tuple[str, list[str]]]:
    """Extract ``(signature, logs)`` from a ``logsNotification`` frame."""
    if not isinstance(message, dict) or message.get("method") != "logsNotification":
        return None
    value = (
        (message.get("params") or {}).get("result") or {}
    ).get("value") or {}
    signature = value.get("signature") or ""
    if not signature or value.get("err") is not None:
        return None
    logs = [line for line in value.get("logs") or [] if isinstance(line, str)]
    return signature, logs


class ProgramLogStream:
    """Fan-out of one program's log notifications to in-process handlers."""

    def __init__(
        self,
        ws_url: str,
        program_id: str,
        *,
        commitment: str = "confirmed",
    ) -> None:
        self._ws_url = ws_url
        self._program_id = program_id
        self._commitment = commitment
        self._handlers: list[LogHandler] = []
        self._running = False

    def subscribe(self, handler: LogHandler) -> Callable[[], None]:
        """Register *handler*; returns a callable that unregisters it."""
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def stop(self) -> None:
        self._running = False

    async def run(self) -> None:
        """Connect and dispatch until ``stop()`` is called or the task is cancelled."""
        self._running = True
        attempt = 0
        while self._running:
            try:
                async with websockets.connect(
                    self._ws_url,
                    ping_interval=20,
                    ping_timeout=10,
                    close_timeout=5,
                ) as ws:
                    await ws.send(json.dumps({
                        "jsonrpc": "2.0",
                        "id": 1,
                        "method": "logsSubscribe",
                        "params": [
                            {"mentions": [self._program_id]},
                            {"commitment": self._commitment},
                        ],
                    }))
                    logger.info("Subscribed to program logs for %s", self._program_id)
                    attempt = 0
                    async for raw in ws:
                        if not self._running:
                            break
                        await self._dispatch_raw(raw)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Log stream connection error: %s", exc)

            if self._running:
                wait = min(_RECONNECT_BASE * (2 ** attempt), _RECONNECT_MAX)
                attempt += 1
                logger.info("Reconnecting log stream in %.0fs", wait)
                await asyncio.sleep(wait)

    async def _dispatch_raw(self, raw: Union[str, bytes]) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-JSON frame")
            return
        parsed = parse_notification(message)
        if parsed is None:
            return
        signature, logs = parsed
        for handler in list(self._handlers):
            try:
                result = handler(signature, logs)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Log handler failed for %s", signature)
