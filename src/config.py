"""
Project configuration file for PumpGuard.

This module centralises all user-modifiable settings such as RPC endpoints,
alert channels, detection thresholds and timing.  You can edit these values
directly or set environment variables to override them.
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_float(
    name: str, default: str, *, low: float = 0.0, high: float = float("inf")
) -> float:
    """Parse an env var as a float and validate it within [low, high]."""
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = float(default)
    if not (low <= value <= high):
        logger.warning("%s=%.4f is outside [%.1f, %.1f] – clamped", name, value, low, high)
        value = max(low, min(value, high))
    return value


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
    """Parse an env var as an int and enforce a minimum."""
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = int(default)
    if value < minimum:
        logger.warning("%s=%d is below minimum %d – clamped", name, value, minimum)
        value = minimum
    return value


def _parse_bool(name: str, default: bool = True) -> bool:
    """Parse an on/off env var.  Anything but ``false`` / ``0`` / ``no`` is on."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"false", "0", "no", "off"}


# ---------------------------------------------------------------------------
# Solana RPC (read-only, no wallet needed)
# ---------------------------------------------------------------------------
SOLANA_RPC_ENDPOINT: str = os.getenv(
    "SOLANA_RPC_ENDPOINT",
    "https://api.mainnet-beta.solana.com",
)
SOLANA_WS_ENDPOINT: str = os.getenv(
    "SOLANA_WS_ENDPOINT",
    "wss://api.mainnet-beta.solana.com",
)
PUMP_PROGRAM_ID: str = os.getenv(
    "PUMP_PROGRAM_ID",
    "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P",
)

# ---------------------------------------------------------------------------
# Telegram alerts (disabled when either value is empty)
# ---------------------------------------------------------------------------
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID: str = os.getenv("TELEGRAM_CHAT_ID", "")

# ---------------------------------------------------------------------------
# Launch monitor – alert filtering
# ---------------------------------------------------------------------------
MIN_LIQUIDITY_SOL: float = _parse_float("MIN_LIQUIDITY_SOL", "0")
MAX_ALERTS_PER_MINUTE: int = _parse_int("MAX_ALERTS_PER_MINUTE", "10", minimum=0)
ALERT_NEW_TOKENS: bool = _parse_bool("ALERT_NEW_TOKENS", True)

# ---------------------------------------------------------------------------
# Whale watcher
# ---------------------------------------------------------------------------
WHALE_THRESHOLD_SOL: float = _parse_float("WHALE_THRESHOLD_SOL", "50", low=0.001)
ALERT_ON_ACCUMULATION: bool = _parse_bool("ALERT_ON_ACCUMULATION", True)
ALERT_ON_DUMP: bool = _parse_bool("ALERT_ON_DUMP", True)
ACCUMULATION_WINDOW_SECONDS: float = _parse_float(
    "ACCUMULATION_WINDOW_SECONDS", "3600", low=1.0
)
MIN_TRANSACTIONS_FOR_PATTERN: int = _parse_int("MIN_TRANSACTIONS_FOR_PATTERN", "3")

# ---------------------------------------------------------------------------
# Rug detection  (percentages, 0 – 100)
# ---------------------------------------------------------------------------
LP_REMOVAL_THRESHOLD_PERCENT: float = _parse_float(
    "LP_REMOVAL_THRESHOLD_PERCENT", "50", high=100.0
)
SUSPICIOUS_SELL_PERCENT: float = _parse_float("SUSPICIOUS_SELL_PERCENT", "10", high=100.0)
DEV_WALLET_SELL_ALERT: bool = _parse_bool("DEV_WALLET_SELL_ALERT", True)

# ---------------------------------------------------------------------------
# Timing  (seconds)
# ---------------------------------------------------------------------------
TRADE_SETTLE_DELAY: float = _parse_float("TRADE_SETTLE_DELAY", "0.3", high=10.0)
CREATE_SETTLE_DELAY: float = _parse_float("CREATE_SETTLE_DELAY", "0.5", high=10.0)
HEALTH_CHECK_INTERVAL: int = _parse_int("HEALTH_CHECK_INTERVAL", "30")
PATTERN_SCAN_INTERVAL: int = _parse_int("PATTERN_SCAN_INTERVAL", "60")

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
DB_PATH: str = os.getenv("DB_PATH", "data/pumpguard.db")

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
REQUEST_TIMEOUT: int = _parse_int("REQUEST_TIMEOUT", "15", minimum=1)
MAX_CONCURRENT_PROBES: int = _parse_int("MAX_CONCURRENT_PROBES", "5", minimum=1)

# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------
CB_FAILURE_THRESHOLD: int = _parse_int("CB_FAILURE_THRESHOLD", "8", minimum=1)
CB_RECOVERY_TIMEOUT: float = float(os.getenv("CB_RECOVERY_TIMEOUT", "60"))

# ---------------------------------------------------------------------------
# Sentry (error tracking)
# ---------------------------------------------------------------------------
SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "production")
SENTRY_TRACES_SAMPLE_RATE: float = _parse_float(
    "SENTRY_TRACES_SAMPLE_RATE", "0.1", low=0.0, high=1.0
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# ---------------------------------------------------------------------------
# Control / query API
# ---------------------------------------------------------------------------
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = _parse_int("API_PORT", "3000", minimum=1)
RATE_LIMIT_QUERY: str = os.getenv("RATE_LIMIT_QUERY", "60/minute")
CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]
