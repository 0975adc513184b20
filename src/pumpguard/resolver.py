"""
Transaction resolution.

Turns a classified ``(signature, kind)`` into a structured fact by fetching
the decoded transaction and extracting the fields the trackers need:

- BUY / SELL        → ``Movement``
- TOKEN_CREATE      → ``TokenLaunch``
- LIQUIDITY_CHANGE  → ``LiquidityChange``

Log notifications arrive before the transaction is queryable, so trade and
creation lookups first wait a fixed settle delay.  That wait is a scheduling
rule, not a retry: if the fetch still comes back empty, or the record lacks
a signer or a mint, the event is dropped and ``None`` is returned.  Nothing
in this module raises on bad data.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Awaitable, Callable, Optional

from .models import (
    Direction,
    EventKind,
    LiquidityChange,
    Movement,
    TokenBalance,
    TokenLaunch,
    TransactionDetail,
)

logger = logging.getLogger(__name__)

FetchTransaction = Callable[[str], Awaitable[Optional[TransactionDetail]]]

_NAME_RE = re.compile(r"name:\s*([^,]+)")
_SYMBOL_RE = re.compile(r"symbol:\s*([^,]+)")

_TRADE_DIRECTIONS = {EventKind.BUY: Direction.BUY, EventKind.SELL: Direction.SELL}


# ---------------------------------------------------------------------------
# Pure extraction
# ---------------------------------------------------------------------------

def _first_signer(detail: TransactionDetail, *, writable: bool = False) -> Optional[str]:
    for key in detail.account_keys:
        if key.signer and (key.writable or not writable) and key.pubkey:
            return key.pubkey
    return None


def _owner_balance(balances: list[TokenBalance], owner: str, mint: str) -> Optional[float]:
    for b in balances:
        if b.owner == owner and b.mint == mint:
            return b.ui_amount
    return None


def extract_movement(
    detail: TransactionDetail,
    direction: Direction,
    signature: str,
    observed_at: float,
) -> Optional[Movement]:
    """Build a ``Movement`` from a decoded trade, or ``None`` if unparseable.

    The token amount is the change in the actor's balance for the mint.  A
    buy needs the post-trade snapshot and a sell the pre-trade one (a buy may
    create the token account, a sell may close it); the missing side counts
    as zero.
    """
    wallet = _first_signer(detail)
    balance_records = detail.pre_token_balances or detail.post_token_balances
    mint = next((b.mint for b in balance_records if b.mint), None)
    if not wallet or not mint:
        return None

    delta = detail.fee_payer_delta_sol()
    amount_native = abs(delta) if delta is not None else 0.0

    pre = _owner_balance(detail.pre_token_balances, wallet, mint)
    post = _owner_balance(detail.post_token_balances, wallet, mint)
    required = post if direction == Direction.BUY else pre
    amount_token = abs((post or 0.0) - (pre or 0.0)) if required is not None else 0.0

    return Movement(
        signature=signature,
        wallet=wallet,
        mint=mint,
        direction=direction,
        amount_native=amount_native,
        amount_token=amount_token,
        observed_at=observed_at,
    )


def extract_launch(detail: TransactionDetail, signature: str) -> Optional[TokenLaunch]:
    """Build a ``TokenLaunch`` from a decoded creation transaction."""
    mint = detail.initialized_mints[0] if detail.initialized_mints else None
    if not mint:
        mint = next((b.mint for b in detail.post_token_balances if b.mint), None)
    if not mint:
        return None

    name, symbol = "Unknown", "UNK"
    for line in detail.log_messages:
        if "name:" in line:
            match = _NAME_RE.search(line)
            if match:
                name = match.group(1).strip()
        if "symbol:" in line:
            match = _SYMBOL_RE.search(line)
            if match:
                symbol = match.group(1).strip()

    delta = detail.fee_payer_delta_sol()
    return TokenLaunch(
        mint=mint,
        name=name,
        symbol=symbol,
        creator=_first_signer(detail, writable=True) or "",
        signature=detail.signatures[0] if detail.signatures else signature,
        initial_liquidity=abs(delta) if delta is not None else 0.0,
    )


def extract_liquidity_change(
    detail: TransactionDetail, signature: str, observed_at: float
) -> Optional[LiquidityChange]:
    """Mints touched by a liquidity withdrawal and the SOL that left account 0."""
    mints = tuple(dict.fromkeys(b.mint for b in detail.pre_token_balances if b.mint))
    if not mints:
        return None
    delta = detail.fee_payer_delta_sol()
    return LiquidityChange(
        signature=signature,
        mints=mints,
        native_delta=-delta if delta is not None else 0.0,
        observed_at=observed_at,
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class MovementResolver:
    """Fetch-and-extract front end for the trackers."""

    def __init__(
        self,
        fetch_transaction: FetchTransaction,
        *,
        trade_settle_delay: float = 0.3,
        create_settle_delay: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetch = fetch_transaction
        self._trade_delay = trade_settle_delay
        self._create_delay = create_settle_delay
        self._clock = clock
        self._sleep = sleep
        self.misses = 0

    async def _fetch_detail(self, signature: str) -> Optional[TransactionDetail]:
        try:
            detail = await self._fetch(signature)
        except Exception:
            logger.debug("Transaction fetch failed for %s", signature, exc_info=True)
            detail = None
        if detail is None:
            self.misses += 1
        return detail

    async def resolve(self, signature: str, kind: EventKind) -> Optional[Movement]:
        """Resolve a BUY or SELL event into a ``Movement``."""
        direction = _TRADE_DIRECTIONS.get(kind)
        if direction is None:
            raise ValueError(f"resolve() handles trades only, got {kind.value}")

        if self._trade_delay > 0:
            await self._sleep(self._trade_delay)
        detail = await self._fetch_detail(signature)
        if detail is None:
            return None
        movement = extract_movement(detail, direction, signature, self._clock())
        if movement is None:
            logger.debug("Dropping unparseable %s %s", kind.value, signature)
        return movement

    async def resolve_launch(self, signature: str) -> Optional[TokenLaunch]:
        if self._create_delay > 0:
            await self._sleep(self._create_delay)
        detail = await self._fetch_detail(signature)
        if detail is None:
            return None
        return extract_launch(detail, signature)

    async def resolve_liquidity_change(self, signature: str) -> Optional[LiquidityChange]:
        detail = await self._fetch_detail(signature)
        if detail is None:
            return None
        return extract_liquidity_change(detail, signature, self._clock())
