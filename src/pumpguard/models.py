"""
Pydantic models used throughout PumpGuard.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import LAMPORTS_PER_SOL, PUMP_TOTAL_SUPPLY


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
class EventKind(str, Enum):
    TOKEN_CREATE = "token_create"
    BUY = "buy"
    SELL = "sell"
    LIQUIDITY_CHANGE = "liquidity_change"


class Direction(str, Enum):
    BUY = "buy"
    SELL = "sell"


class AlertKind(str, Enum):
    NEW_TOKEN = "new_token"
    RUG = "rug"
    WHALE_BUY = "whale_buy"
    WHALE_SELL = "whale_sell"
    SUSPICIOUS = "suspicious"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Decoded transaction detail  (input from the RPC boundary)
# ---------------------------------------------------------------------------
class AccountKey(BaseModel):
    pubkey: str
    signer: bool = False
    writable: bool = False


class TokenBalance(BaseModel):
    account_index: int = 0
    mint: str = ""
    owner: str = ""
    ui_amount: float = 0.0


class TransactionDetail(BaseModel):
    """The subset of a ``jsonParsed`` transaction the resolvers need."""

    signatures: list[str] = Field(default_factory=list)
    account_keys: list[AccountKey] = Field(default_factory=list)
    pre_balances: list[int] = Field(default_factory=list, description="Lamports")
    post_balances: list[int] = Field(default_factory=list, description="Lamports")
    pre_token_balances: list[TokenBalance] = Field(default_factory=list)
    post_token_balances: list[TokenBalance] = Field(default_factory=list)
    log_messages: list[str] = Field(default_factory=list)
    initialized_mints: list[str] = Field(
        default_factory=list,
        description="Mints created by ``initializeMint`` inner instructions",
    )

    @classmethod
    def from_rpc(cls, tx: dict[str, Any]) -> "TransactionDetail":
        """Build from a ``getTransaction`` result in ``jsonParsed`` encoding."""
        transaction = tx.get("transaction") or {}
        message = transaction.get("message") or {}
        meta = tx.get("meta") or {}

        keys: list[AccountKey] = []
        for key in message.get("accountKeys") or []:
            if isinstance(key, dict):
                keys.append(
                    AccountKey(
                        pubkey=key.get("pubkey", ""),
                        signer=bool(key.get("signer", False)),
                        writable=bool(key.get("writable", False)),
                    )
                )
            else:
                keys.append(AccountKey(pubkey=str(key)))

        def _balances(raw: Optional[list]) -> list[TokenBalance]:
            out: list[TokenBalance] = []
            for b in raw or []:
                amount = (b.get("uiTokenAmount") or {}).get("uiAmount")
                out.append(
                    TokenBalance(
                        account_index=b.get("accountIndex", 0),
                        mint=b.get("mint", ""),
                        owner=b.get("owner", ""),
                        ui_amount=float(amount or 0.0),
                    )
                )
            return out

        initialized: list[str] = []
        for inner in meta.get("innerInstructions") or []:
            for inst in inner.get("instructions") or []:
                parsed = inst.get("parsed")
                if isinstance(parsed, dict) and parsed.get("type") == "initializeMint":
                    mint = (parsed.get("info") or {}).get("mint")
                    if mint:
                        initialized.append(mint)

        return cls(
            signatures=list(transaction.get("signatures") or []),
            account_keys=keys,
            pre_balances=list(meta.get("preBalances") or []),
            post_balances=list(meta.get("postBalances") or []),
            pre_token_balances=_balances(meta.get("preTokenBalances")),
            post_token_balances=_balances(meta.get("postTokenBalances")),
            log_messages=list(meta.get("logMessages") or []),
            initialized_mints=initialized,
        )

    def fee_payer_delta_sol(self) -> Optional[float]:
        """Signed post − pre SOL change of account 0, or None if absent."""
        if not self.pre_balances or not self.post_balances:
            return None
        return (self.post_balances[0] - self.pre_balances[0]) / LAMPORTS_PER_SOL


# ---------------------------------------------------------------------------
# Resolved facts  (immutable)
# ---------------------------------------------------------------------------
class Movement(BaseModel):
    """A resolved buy or sell extracted from one transaction."""

    model_config = ConfigDict(frozen=True)

    signature: str
    wallet: str
    mint: str
    direction: Direction
    amount_native: float = Field(0.0, ge=0.0, description="SOL moved")
    amount_token: float = Field(0.0, ge=0.0)
    observed_at: float = Field(..., description="Monotonic seconds")


class TokenLaunch(BaseModel):
    """A resolved token-creation transaction."""

    model_config = ConfigDict(frozen=True)

    mint: str
    name: str = "Unknown"
    symbol: str = "UNK"
    creator: str = ""
    signature: str = ""
    initial_liquidity: float = Field(0.0, ge=0.0)
    total_supply: float = Field(PUMP_TOTAL_SUPPLY, gt=0.0)
    created_at: datetime = Field(default_factory=_utcnow)


class LiquidityChange(BaseModel):
    """A withdraw / remove_liquidity / migrate transaction."""

    model_config = ConfigDict(frozen=True)

    signature: str
    mints: tuple[str, ...] = ()
    native_delta: float = Field(0.0, description="Fee payer pre − post, in SOL")
    observed_at: float


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    kind: AlertKind
    severity: Severity
    signal: str = ""
    mint: str = ""
    title: str
    message: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Per-entity state
# ---------------------------------------------------------------------------
class MonitoredToken(BaseModel):
    mint: str
    symbol: str = "UNK"
    name: str = "Unknown"
    creator_wallet: str = ""
    total_supply: float = PUMP_TOTAL_SUPPLY
    initial_liquidity: float = 0.0
    current_liquidity: float = 0.0
    suspicion_score: int = 0
    sell_history: list[Movement] = Field(default_factory=list)
    is_rugged: bool = False
    rug_reason: str = ""
    last_health_check: float = 0.0
    alert_count: int = 0
    watched_at: datetime = Field(default_factory=_utcnow)


class MonitoredWallet(BaseModel):
    address: str
    label: str = ""
    total_volume: float = 0.0
    is_whale: bool = False
    recent_movements: list[Movement] = Field(default_factory=list)
    last_activity: Optional[float] = None


class TokenFlow(BaseModel):
    mint: str
    buys: list[Movement] = Field(default_factory=list)
    sells: list[Movement] = Field(default_factory=list)
    net_flow: float = 0.0
    unique_buyers: set[str] = Field(default_factory=set)
    unique_sellers: set[str] = Field(default_factory=set)

    def is_empty(self) -> bool:
        return not self.buys and not self.sells


# ---------------------------------------------------------------------------
# Thresholds / filters  (injected into the trackers)
# ---------------------------------------------------------------------------
class RugThresholds(BaseModel):
    lp_removal_percent: float = Field(50.0, ge=0.0, le=100.0)
    suspicious_sell_percent: float = Field(10.0, ge=0.0, le=100.0)
    dev_wallet_sell_alert: bool = True

    @classmethod
    def from_config(cls) -> "RugThresholds":
        import config

        return cls(
            lp_removal_percent=config.LP_REMOVAL_THRESHOLD_PERCENT,
            suspicious_sell_percent=config.SUSPICIOUS_SELL_PERCENT,
            dev_wallet_sell_alert=config.DEV_WALLET_SELL_ALERT,
        )


class WhaleThresholds(BaseModel):
    whale_threshold_sol: float = Field(50.0, gt=0.0)
    alert_on_accumulation: bool = True
    alert_on_dump: bool = True
    accumulation_window_seconds: float = Field(3600.0, gt=0.0)
    min_transactions_for_pattern: int = Field(3, ge=1)

    @classmethod
    def from_config(cls) -> "WhaleThresholds":
        import config

        return cls(
            whale_threshold_sol=config.WHALE_THRESHOLD_SOL,
            alert_on_accumulation=config.ALERT_ON_ACCUMULATION,
            alert_on_dump=config.ALERT_ON_DUMP,
            accumulation_window_seconds=config.ACCUMULATION_WINDOW_SECONDS,
            min_transactions_for_pattern=config.MIN_TRANSACTIONS_FOR_PATTERN,
        )


class LaunchFilters(BaseModel):
    min_liquidity_sol: float = 0.0
    max_liquidity_sol: float = float("inf")
    blacklisted_creators: set[str] = Field(default_factory=set)
    whitelisted_creators: set[str] = Field(default_factory=set)

    def admits(self, launch: TokenLaunch) -> bool:
        if launch.creator in self.blacklisted_creators:
            return False
        if self.whitelisted_creators and launch.creator not in self.whitelisted_creators:
            return False
        if launch.initial_liquidity < self.min_liquidity_sol:
            return False
        if launch.initial_liquidity > self.max_liquidity_sol:
            return False
        return True


# ---------------------------------------------------------------------------
# Query surface snapshots
# ---------------------------------------------------------------------------
class WatchedTokenSummary(BaseModel):
    mint: str
    symbol: str
    name: str
    suspicion_score: int
    current_liquidity: float
    is_rugged: bool
    alert_count: int


class WhaleSummary(BaseModel):
    address: str
    label: str = ""
    total_volume: float
    last_activity: Optional[float] = None
    recent_movements: list[Movement] = Field(default_factory=list)


class TokenFlowReport(BaseModel):
    mint: str
    net_flow: float
    buy_count: int
    sell_count: int
    unique_buyers: int
    unique_sellers: int
    total_buy_volume: float
    total_sell_volume: float


class TopMover(BaseModel):
    mint: str
    net_flow: float
    volume: float


# ---------------------------------------------------------------------------
# Control surface requests
# ---------------------------------------------------------------------------
class WatchTokenRequest(BaseModel):
    mint: str = Field(..., min_length=32, max_length=44)


class WatchWalletRequest(BaseModel):
    address: str = Field(..., min_length=32, max_length=44)
    label: str = Field("", max_length=64)


class FilterUpdate(BaseModel):
    key: str
    value: Any


class CreatorRequest(BaseModel):
    address: str = Field(..., min_length=32, max_length=44)
