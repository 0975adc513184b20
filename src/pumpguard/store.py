"""
SQLite persistence for PumpGuard.

Keeps a durable record of detected tokens, resolved transactions, tracked
wallets and emitted alerts.  The engine never waits on it for correctness:
every write swallows and logs its own failure, and in-memory state moves on
regardless.  Reads fall back to empty results.

Uses a single persistent ``aiosqlite`` connection created lazily on first
access.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

import aiosqlite

from .models import Alert, MonitoredWallet, Movement, TokenLaunch

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tokens (
        mint              TEXT PRIMARY KEY,
        name              TEXT,
        symbol            TEXT,
        creator           TEXT,
        created_at        TEXT,
        initial_liquidity REAL,
        total_supply      REAL,
        is_rugged         INTEGER DEFAULT 0,
        rug_reason        TEXT,
        last_updated      TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        signature     TEXT PRIMARY KEY,
        mint          TEXT,
        wallet        TEXT,
        type          TEXT,
        amount_sol    REAL,
        amount_tokens REAL,
        timestamp     TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tx_mint ON transactions(mint)",
    "CREATE INDEX IF NOT EXISTS idx_tx_wallet ON transactions(wallet)",
    """
    CREATE TABLE IF NOT EXISTS watched_wallets (
        address          TEXT PRIMARY KEY,
        label            TEXT,
        total_volume_sol REAL DEFAULT 0,
        last_activity    TEXT,
        is_whale         INTEGER DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alerts (
        row_id     INTEGER PRIMARY KEY AUTOINCREMENT,
        alert_id   INTEGER,
        kind       TEXT,
        severity   TEXT,
        signal     TEXT,
        mint       TEXT,
        title      TEXT,
        message    TEXT,
        payload    TEXT,
        created_at TEXT
    )
    """,
)


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class SQLiteStore:
    def __init__(self, db_path: str = "data/pumpguard.db") -> None:
        self._db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def _get_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            if self._db_path != ":memory:":
                os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
            conn = await aiosqlite.connect(self._db_path)
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA journal_mode=WAL")
            for statement in _SCHEMA:
                await conn.execute(statement)
            await conn.commit()
            self._conn = conn
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            try:
                await self._conn.close()
            except Exception:
                logger.debug("Store close failed", exc_info=True)
            self._conn = None

    async def _write(self, sql: str, params: tuple, what: str) -> None:
        try:
            db = await self._get_conn()
            await db.execute(sql, params)
            await db.commit()
        except Exception:
            logger.warning("Store write failed (%s)", what, exc_info=True)

    async def _read(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        try:
            db = await self._get_conn()
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]
        except Exception:
            logger.warning("Store read failed: %s", sql.split()[0:4], exc_info=True)
            return []

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def save_token(self, launch: TokenLaunch) -> None:
        await self._write(
            "INSERT OR REPLACE INTO tokens "
            "(mint, name, symbol, creator, created_at, initial_liquidity, "
            " total_supply, last_updated) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                launch.mint,
                launch.name,
                launch.symbol,
                launch.creator,
                launch.created_at.isoformat(),
                launch.initial_liquidity,
                launch.total_supply,
                _now_iso(),
            ),
            f"token {launch.mint}",
        )

    async def get_token(self, mint: str) -> Optional[dict[str, Any]]:
        rows = await self._read("SELECT * FROM tokens WHERE mint = ?", (mint,))
        return rows[0] if rows else None

    async def mark_rugged(self, mint: str, reason: str) -> None:
        await self._write(
            "UPDATE tokens SET is_rugged = 1, rug_reason = ?, last_updated = ? "
            "WHERE mint = ?",
            (reason, _now_iso(), mint),
            f"rug {mint}",
        )

    async def get_rugged_tokens(self, limit: int = 50) -> list[dict[str, Any]]:
        return await self._read(
            "SELECT * FROM tokens WHERE is_rugged = 1 ORDER BY last_updated DESC LIMIT ?",
            (limit,),
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def save_transaction(self, movement: Movement) -> None:
        await self._write(
            "INSERT OR IGNORE INTO transactions "
            "(signature, mint, wallet, type, amount_sol, amount_tokens, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                movement.signature,
                movement.mint,
                movement.wallet,
                movement.direction.value,
                movement.amount_native,
                movement.amount_token,
                _now_iso(),
            ),
            f"tx {movement.signature}",
        )

    async def get_transactions_for_token(self, mint: str, limit: int = 100) -> list[dict[str, Any]]:
        return await self._read(
            "SELECT * FROM transactions WHERE mint = ? ORDER BY timestamp DESC LIMIT ?",
            (mint, limit),
        )

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    async def save_wallet(self, wallet: MonitoredWallet) -> None:
        await self._write(
            "INSERT OR REPLACE INTO watched_wallets "
            "(address, label, total_volume_sol, last_activity, is_whale) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                wallet.address,
                wallet.label,
                wallet.total_volume,
                _now_iso(),
                1 if wallet.is_whale else 0,
            ),
            f"wallet {wallet.address}",
        )

    async def get_whales(self) -> list[dict[str, Any]]:
        return await self._read("SELECT * FROM watched_wallets WHERE is_whale = 1")

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def save_alert(self, alert: Alert) -> None:
        """AlertBus subscriber: keeps a durable copy of every alert."""
        await self._write(
            "INSERT INTO alerts "
            "(alert_id, kind, severity, signal, mint, title, message, payload, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                alert.id,
                alert.kind.value,
                alert.severity.value,
                alert.signal,
                alert.mint,
                alert.title,
                alert.message,
                json.dumps(alert.payload, default=str),
                alert.created_at.isoformat(),
            ),
            f"alert #{alert.id}",
        )

    async def get_stats(self) -> dict[str, int]:
        stats: dict[str, int] = {}
        for key, sql in (
            ("total_tokens", "SELECT COUNT(*) AS n FROM tokens"),
            ("rugged_tokens", "SELECT COUNT(*) AS n FROM tokens WHERE is_rugged = 1"),
            ("whales", "SELECT COUNT(*) AS n FROM watched_wallets WHERE is_whale = 1"),
            ("alerts", "SELECT COUNT(*) AS n FROM alerts"),
        ):
            rows = await self._read(sql)
            stats[key] = int(rows[0]["n"]) if rows else 0
        return stats
