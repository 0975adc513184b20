"""
REST control / query API for PumpGuard using FastAPI.

Endpoints
---------
GET    /health                  - Liveness, uptime and RPC circuit state
GET    /stats                   - Engine counters
GET    /tokens                  - Watched tokens with suspicion scores
GET    /tokens/{mint}           - Full state of one watched token
GET    /tokens/{mint}/flow      - Rolling buy / sell flow for a mint
GET    /launches                - Recently detected launches
GET    /whales                  - Known whales by volume
GET    /movers?limit=N          - Mints with the largest net flow
GET    /alerts?limit=N          - Recent alerts, newest first
POST   /watch/token             - Start watching a mint
DELETE /watch/token/{mint}      - Stop watching a mint
POST   /watch/wallet            - Track a wallet (optional label)
DELETE /watch/wallet/{address}  - Stop tracking a wallet
POST   /filters                 - Update one launch filter
POST   /blacklist               - Blacklist a token creator

JSON only, no UI.  Requests are rate limited per IP via slowapi.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from config import (
    CORS_ORIGINS,
    RATE_LIMIT_QUERY,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
)
from .models import (
    Alert,
    CreatorRequest,
    FilterUpdate,
    TokenFlowReport,
    TokenLaunch,
    TopMover,
    WatchedTokenSummary,
    WatchTokenRequest,
    WatchWalletRequest,
    WhaleSummary,
)
from .pipeline import Pipeline, build_pipeline

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Sentry
# ---------------------------------------------------------------------------
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        # 4xx responses are client errors, not incidents
        before_send=lambda event, hint: (
            None
            if (hint.get("exc_info") and
                isinstance(hint["exc_info"][1], HTTPException) and
                (hint["exc_info"][1].status_code or 500) < 500)
            else event
        ),
    )
    logger.info("Sentry initialised (env=%s)", SENTRY_ENVIRONMENT)

_start_time = time.monotonic()

_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

_pipeline: Optional[Pipeline] = None


def set_pipeline(pipeline: Optional[Pipeline]) -> None:
    """Register the pipeline the endpoints read from and control."""
    global _pipeline
    _pipeline = pipeline


def _require_pipeline() -> Pipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Engine not running")
    return _pipeline


def _validate_address(value: str, what: str = "address") -> None:
    if not _BASE58_RE.match(value):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid Solana {what}. Expected 32-44 base58 characters.",
        )


limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Run the engine for the lifetime of the app unless one was injected."""
    owned = _pipeline is None
    if owned:
        pipeline = build_pipeline()
        set_pipeline(pipeline)
        await pipeline.start()
        application.state.stream_task = asyncio.create_task(
            pipeline.source.run(), name="log_stream"
        )
    yield
    if owned and _pipeline is not None:
        application.state.stream_task.cancel()
        _pipeline.source.stop()
        await _pipeline.close()
        set_pipeline(None)


app = FastAPI(
    title="PumpGuard API",
    description="Rug-pull and whale activity signals for pump.fun tokens.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Accept"],
)


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


app.add_middleware(AccessLogMiddleware)


# ------------------------------------------------------------------
# System
# ------------------------------------------------------------------


@app.get("/", tags=["system"], include_in_schema=False)
async def root():
    return RedirectResponse(url="/docs")


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Health check including uptime and the RPC circuit breaker state."""
    breakers: dict = {}
    running = False
    if _pipeline is not None:
        running = _pipeline.running
        cb = getattr(_pipeline.rpc, "circuit_breaker", None)
        if cb is not None:
            breakers[cb.name] = cb.status()
    return {
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "engine_running": running,
        "circuit_breakers": breakers,
    }


@app.get("/stats", tags=["system"])
@limiter.limit(RATE_LIMIT_QUERY)
async def stats(request: Request) -> dict:
    pipeline = _require_pipeline()
    body = pipeline.get_stats()
    body["store"] = await pipeline.store.get_stats()
    return body


# ------------------------------------------------------------------
# Queries
# ------------------------------------------------------------------


@app.get("/tokens", response_model=list[WatchedTokenSummary], tags=["tokens"])
@limiter.limit(RATE_LIMIT_QUERY)
async def watched_tokens(request: Request) -> list[WatchedTokenSummary]:
    return _require_pipeline().get_watched_tokens()


@app.get("/tokens/{mint}", tags=["tokens"])
@limiter.limit(RATE_LIMIT_QUERY)
async def token_details(request: Request, mint: str) -> dict:
    _validate_address(mint, "mint address")
    details = _require_pipeline().get_token_details(mint)
    if details is None:
        raise HTTPException(status_code=404, detail="Token is not watched")
    return details


@app.get("/tokens/{mint}/flow", response_model=TokenFlowReport, tags=["tokens"])
@limiter.limit(RATE_LIMIT_QUERY)
async def token_flow(request: Request, mint: str) -> TokenFlowReport:
    _validate_address(mint, "mint address")
    report = _require_pipeline().get_token_flow(mint)
    if report is None:
        raise HTTPException(status_code=404, detail="No recent flow for this mint")
    return report


@app.get("/launches", response_model=list[TokenLaunch], tags=["tokens"])
@limiter.limit(RATE_LIMIT_QUERY)
async def recent_launches(
    request: Request, limit: int = Query(50, ge=1, le=500)
) -> list[TokenLaunch]:
    return _require_pipeline().launch_monitor.get_recent_tokens(limit)


@app.get("/whales", response_model=list[WhaleSummary], tags=["wallets"])
@limiter.limit(RATE_LIMIT_QUERY)
async def whales(request: Request) -> list[WhaleSummary]:
    return _require_pipeline().get_whales()


@app.get("/movers", response_model=list[TopMover], tags=["wallets"])
@limiter.limit(RATE_LIMIT_QUERY)
async def top_movers(
    request: Request, limit: int = Query(10, ge=1, le=100)
) -> list[TopMover]:
    return _require_pipeline().get_top_movers(limit)


@app.get("/alerts", response_model=list[Alert], tags=["alerts"])
@limiter.limit(RATE_LIMIT_QUERY)
async def recent_alerts(
    request: Request, limit: int = Query(50, ge=1, le=1000)
) -> list[Alert]:
    return _require_pipeline().get_recent_alerts(limit)


# ------------------------------------------------------------------
# Control
# ------------------------------------------------------------------


@app.post("/watch/token", response_model=WatchedTokenSummary, tags=["control"])
@limiter.limit(RATE_LIMIT_QUERY)
async def watch_token(request: Request, body: WatchTokenRequest) -> WatchedTokenSummary:
    _validate_address(body.mint, "mint address")
    return await _require_pipeline().watch_token(body.mint)


@app.delete("/watch/token/{mint}", tags=["control"])
@limiter.limit(RATE_LIMIT_QUERY)
async def unwatch_token(request: Request, mint: str) -> dict:
    if not _require_pipeline().unwatch_token(mint):
        raise HTTPException(status_code=404, detail="Token is not watched")
    return {"status": "ok", "mint": mint}


@app.post("/watch/wallet", tags=["control"])
@limiter.limit(RATE_LIMIT_QUERY)
async def watch_wallet(request: Request, body: WatchWalletRequest) -> dict:
    _validate_address(body.address, "wallet address")
    wallet = await _require_pipeline().watch_wallet(body.address, body.label)
    return {"status": "ok", "address": wallet.address, "label": wallet.label,
            "is_whale": wallet.is_whale}


@app.delete("/watch/wallet/{address}", tags=["control"])
@limiter.limit(RATE_LIMIT_QUERY)
async def unwatch_wallet(request: Request, address: str) -> dict:
    if not _require_pipeline().unwatch_wallet(address):
        raise HTTPException(status_code=404, detail="Wallet is not tracked")
    return {"status": "ok", "address": address}


@app.post("/filters", tags=["control"])
@limiter.limit(RATE_LIMIT_QUERY)
async def set_filter(request: Request, body: FilterUpdate) -> dict:
    try:
        _require_pipeline().set_filter(body.key, body.value)
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unknown filter: {body.key}")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"status": "ok", "key": body.key}


@app.post("/blacklist", tags=["control"])
@limiter.limit(RATE_LIMIT_QUERY)
async def blacklist_creator(request: Request, body: CreatorRequest) -> dict:
    _validate_address(body.address, "creator address")
    _require_pipeline().blacklist_creator(body.address)
    return {"status": "ok", "address": body.address}
