"""
Telegram alert sink.

Subscribes to the ``AlertBus`` with a synchronous callback that only
enqueues; a single worker task formats each alert as MarkdownV2 and sends
it through ``telegram.Bot``.  A send failure is logged and the worker moves
on to the next alert.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from telegram import Bot

from .models import Alert

logger = logging.getLogger(__name__)

_MD_V2_SPECIAL = set(r"_*[]()~`>#+-=|{}.!")

_EMOJI = {
    "rug": "🚨",
    "whale_buy": "🐋📈",
    "whale_sell": "🐋📉",
    "new_token": "🆕",
    "suspicious": "⚠️",
}

_QUEUE_MAX = 500


def _esc(text: str) -> str:
    """Escape special characters for Telegram MarkdownV2."""
    return "".join(f"\\{c}" if c in _MD_V2_SPECIAL else c for c in text)


def format_alert(alert: Alert) -> str:
    emoji = _EMOJI.get(alert.kind.value, "📢")
    return f"{emoji} *{_esc(alert.title)}*\n\n{_esc(alert.message)}"


class TelegramNotifier:
    def __init__(self, bot_token: str, chat_id: str, *, bot: Optional[Bot] = None) -> None:
        self._chat_id = chat_id
        self._bot = bot or Bot(token=bot_token)
        self._queue: asyncio.Queue[Alert] = asyncio.Queue(maxsize=_QUEUE_MAX)
        self._worker: Optional[asyncio.Task] = None
        self.sent = 0
        self.failed = 0
        self.dropped = 0

    def enqueue(self, alert: Alert) -> None:
        """AlertBus subscriber."""
        try:
            self._queue.put_nowait(alert)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Telegram queue full, dropping alert #%d", alert.id)

    async def send(self, alert: Alert) -> bool:
        try:
            await self._bot.send_message(
                chat_id=self._chat_id,
                text=format_alert(alert),
                parse_mode="MarkdownV2",
            )
        except Exception as exc:
            self.failed += 1
            logger.warning("Failed to send alert #%d to Telegram: %s", alert.id, exc)
            return False
        self.sent += 1
        return True

    async def _run(self) -> None:
        while True:
            alert = await self._queue.get()
            try:
                await self.send(alert)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="telegram_notifier")
            logger.info("Telegram notifier started (chat=%s)", self._chat_id)

    async def stop(self) -> None:
        if self._worker and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()
