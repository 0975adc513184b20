"""
Centralized constants for PumpGuard.

This file contains:
- Solana program addresses (immutable protocol constants)
- Platform facts that the detectors rely on (supply, PDA seeds)
- Fixed detection rules that are not exposed as configuration

Import from this module rather than duplicating values across services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Solana protocol
# ---------------------------------------------------------------------------

LAMPORTS_PER_SOL = 1_000_000_000

SYSTEM_PROGRAM = "11111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

# ---------------------------------------------------------------------------
# pump.fun platform
# ---------------------------------------------------------------------------

# Every pump.fun token is minted with a fixed supply of one billion units.
PUMP_TOTAL_SUPPLY = 1_000_000_000

# PDA seed of the bonding-curve account that holds a token's SOL liquidity.
BONDING_CURVE_SEED = b"bonding-curve"

# ---------------------------------------------------------------------------
# Rug detection rules
# ---------------------------------------------------------------------------

MAX_DEV_SELL_PERCENT = 20.0        # dev sell at/above this % of supply = dump
RAPID_SELL_WINDOW_SECONDS = 60.0   # sells closer than this count as a burst
RAPID_SELL_MIN_COUNT = 3
RAPID_SELL_LIQUIDITY_FRACTION = 0.3
RUG_SUSPICION_CEILING = 80

SCORE_DEV_DUMP = 50
SCORE_DEV_SELL = 20
SCORE_RAPID_SELLING = 30
SCORE_LARGE_SELL = 15

HEALTH_CHECK_MIN_GAP_SECONDS = 25.0

# ---------------------------------------------------------------------------
# In-memory caps
# ---------------------------------------------------------------------------

MAX_TRACKED_TOKENS = 1000          # evict the oldest half beyond this
SELL_HISTORY_LIMIT = 100
WALLET_MOVEMENTS_CAP = 100         # overflow trims to WALLET_MOVEMENTS_KEEP
WALLET_MOVEMENTS_KEEP = 50
ALERT_HISTORY_CAP = 1000           # overflow trims to ALERT_HISTORY_KEEP
ALERT_HISTORY_KEEP = 500
