"""
Solana RPC client helpers for PumpGuard.

Uses the standard JSON-RPC interface over ``httpx`` with retry + exponential
backoff, guarded by a circuit breaker.  Every public method returns ``None``
instead of raising: the engine treats an unreachable node exactly like a
transaction that is not queryable yet.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from solders.pubkey import Pubkey

from ..circuit_breaker import CircuitBreaker, CircuitOpenError
from ..constants import BONDING_CURVE_SEED, LAMPORTS_PER_SOL
from ..models import TransactionDetail
from ._retry import RpcExhaustedError, post_json_rpc

logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_BACKOFF_BASE = 1.5  # seconds


def derive_bonding_curve(mint: str, program_id: str) -> str:
    """Address of the pump.fun bonding-curve PDA holding *mint*'s liquidity."""
    pda, _bump = Pubkey.find_program_address(
        [BONDING_CURVE_SEED, bytes(Pubkey.from_string(mint))],
        Pubkey.from_string(program_id),
    )
    return str(pda)


class SolanaRpcClient:
    """Async Solana JSON-RPC client (read-only)."""

    def __init__(
        self,
        endpoint: str,
        timeout: int = 15,
        circuit_breaker: CircuitBreaker | None = None,
        commitment: str = "confirmed",
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._id_counter = 0
        self._cb = circuit_breaker
        self._commitment = commitment

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    @property
    def circuit_breaker(self) -> CircuitBreaker | None:
        return self._cb

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_transaction(self, signature: str) -> Optional[TransactionDetail]:
        """Fetch and decode a transaction, or ``None`` if not (yet) available."""
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self._commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if not isinstance(result, dict):
            return None
        try:
            return TransactionDetail.from_rpc(result)
        except (ValueError, TypeError, AttributeError):
            logger.debug("Undecodable transaction %s", signature, exc_info=True)
            return None

    async def get_balance(self, address: str) -> Optional[float]:
        """SOL balance of *address*, or ``None`` when the query fails."""
        result = await self._call(
            "getBalance", [address, {"commitment": self._commitment}]
        )
        if isinstance(result, dict):
            value = result.get("value")
            if isinstance(value, (int, float)):
                return value / LAMPORTS_PER_SOL
        return None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: list[Any]) -> Any:
        """JSON-RPC call with retry, guarded by the circuit breaker."""
        self._id_counter += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id_counter,
            "method": method,
            "params": params,
        }
        client = await self._get_client()

        async def _do() -> Any:
            return await post_json_rpc(
                client, self._endpoint, payload=payload,
                max_retries=_MAX_RETRIES, backoff_base=_BACKOFF_BASE,
                label=f"Solana RPC ({method})",
            )

        try:
            if self._cb is not None:
                return await self._cb.call(_do)
            return await _do()
        except CircuitOpenError:
            logger.warning("Solana RPC circuit OPEN – fast-failing %s", method)
            return None
        except RpcExhaustedError as exc:
            logger.debug("%s", exc)
            return None
