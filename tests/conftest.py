"""Shared test fixtures for the PumpGuard test suite."""

from __future__ import annotations

import sys
import os

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from pumpguard.alert_bus import AlertBus
from pumpguard.models import Direction, Movement, TokenLaunch

MINT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
CREATOR = "CrEaToRwa11etAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA1"
TRADER = "TrAdERwa11etBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB1"


class ManualClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """In-memory stand-in for ``SQLiteStore`` that records every call."""

    def __init__(self) -> None:
        self.tokens: dict[str, dict] = {}
        self.transactions: list[Movement] = []
        self.rugged: list[tuple[str, str]] = []
        self.wallets: dict[str, dict] = {}
        self.alerts: list = []
        self.whale_rows: list[dict] = []
        self.closed = False

    async def save_token(self, launch: TokenLaunch) -> None:
        self.tokens[launch.mint] = {
            "mint": launch.mint,
            "name": launch.name,
            "symbol": launch.symbol,
            "creator": launch.creator,
            "initial_liquidity": launch.initial_liquidity,
        }

    async def get_token(self, mint: str):
        return self.tokens.get(mint)

    async def mark_rugged(self, mint: str, reason: str) -> None:
        self.rugged.append((mint, reason))

    async def save_transaction(self, movement: Movement) -> None:
        self.transactions.append(movement)

    async def save_wallet(self, wallet) -> None:
        self.wallets[wallet.address] = {
            "address": wallet.address,
            "label": wallet.label,
            "total_volume_sol": wallet.total_volume,
            "is_whale": wallet.is_whale,
        }

    async def get_whales(self) -> list[dict]:
        return list(self.whale_rows)

    async def save_alert(self, alert) -> None:
        self.alerts.append(alert)

    async def get_stats(self) -> dict:
        return {"total_tokens": len(self.tokens), "rugged_tokens": len(self.rugged),
                "whales": 0, "alerts": len(self.alerts)}

    async def close(self) -> None:
        self.closed = True


class FailingStore(FakeStore):
    """Store whose every write and lookup raises."""

    async def _fail(self, *args, **kwargs):
        raise RuntimeError("database is locked")

    save_token = save_transaction = save_wallet = mark_rugged = _fail
    get_token = save_alert = _fail


def make_movement(
    direction: Direction = Direction.SELL,
    *,
    wallet: str = TRADER,
    mint: str = MINT,
    amount_native: float = 1.0,
    amount_token: float = 0.0,
    observed_at: float = 1000.0,
    signature: str = "",
) -> Movement:
    return Movement(
        signature=signature or f"sig-{direction.value}-{observed_at}-{amount_native}",
        wallet=wallet,
        mint=mint,
        direction=direction,
        amount_native=amount_native,
        amount_token=amount_token,
        observed_at=observed_at,
    )


def make_launch(
    mint: str = MINT,
    *,
    creator: str = CREATOR,
    initial_liquidity: float = 100.0,
    symbol: str = "PEPE",
) -> TokenLaunch:
    return TokenLaunch(
        mint=mint,
        name="Pepe Coin",
        symbol=symbol,
        creator=creator,
        signature="create-sig",
        initial_liquidity=initial_liquidity,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def bus():
    return AlertBus()


# ---------------------------------------------------------------------------
# Raw RPC payloads
# ---------------------------------------------------------------------------

def rpc_trade_tx(
    *,
    signer: str = TRADER,
    mint: str = MINT,
    pre_lamports: int = 10_000_000_000,
    post_lamports: int = 8_000_000_000,
    pre_amount=None,
    post_amount=500_000.0,
) -> dict:
    """A ``getTransaction`` jsonParsed result for a single trade."""
    pre_balances = []
    if pre_amount is not None:
        pre_balances.append({
            "accountIndex": 1, "mint": mint, "owner": signer,
            "uiTokenAmount": {"uiAmount": pre_amount},
        })
    post_balances = []
    if post_amount is not None:
        post_balances.append({
            "accountIndex": 1, "mint": mint, "owner": signer,
            "uiTokenAmount": {"uiAmount": post_amount},
        })
    return {
        "transaction": {
            "signatures": ["trade-sig"],
            "message": {
                "accountKeys": [
                    {"pubkey": signer, "signer": True, "writable": True},
                    {"pubkey": "TokenAccount1111111111111111111111111111111", "signer": False, "writable": True},
                ],
            },
        },
        "meta": {
            "err": None,
            "preBalances": [pre_lamports, 0],
            "postBalances": [post_lamports, 0],
            "preTokenBalances": pre_balances,
            "postTokenBalances": post_balances,
            "logMessages": ["Program log: Instruction: Buy"],
        },
    }


@pytest.fixture
def sample_create_tx():
    return {
        "transaction": {
            "signatures": ["create-sig"],
            "message": {
                "accountKeys": [
                    {"pubkey": "ReadOnlySigner11111111111111111111111111111", "signer": True, "writable": False},
                    {"pubkey": CREATOR, "signer": True, "writable": True},
                    {"pubkey": MINT, "signer": True, "writable": True},
                ],
            },
        },
        "meta": {
            "err": None,
            "preBalances": [5_000_000_000, 0, 0],
            "postBalances": [3_500_000_000, 0, 0],
            "preTokenBalances": [],
            "postTokenBalances": [
                {"accountIndex": 3, "mint": MINT, "owner": CREATOR,
                 "uiTokenAmount": {"uiAmount": 1000.0}},
            ],
            "innerInstructions": [
                {"index": 0, "instructions": [
                    {"parsed": {"type": "initializeMint", "info": {"mint": MINT}}},
                ]},
            ],
            "logMessages": [
                "Program log: Instruction: Create",
                "Program log: name: Pepe Coin, symbol: PEPE, uri: https://x",
            ],
        },
    }
