"""
Async JSON-RPC POST with retry and exponential backoff.

Only HTTP-level failures are retried (429, 5xx, connection errors); when
they persist ``RpcExhaustedError`` is raised so the caller's circuit breaker
can count it.  A JSON-RPC ``error`` body or a ``null`` result is a definitive
answer from the node and comes back as ``None``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class RpcExhaustedError(Exception):
    """The endpoint could not be reached within the retry budget."""


def _retry_after(resp: httpx.Response, default: float) -> float:
    """Seconds from an integer ``Retry-After`` header, else *default*."""
    raw = resp.headers.get("retry-after")
    if raw is not None:
        try:
            return max(float(raw), 0.5)
        except (ValueError, TypeError):
            pass
    return default


async def post_json_rpc(
    client: httpx.AsyncClient,
    url: str,
    *,
    payload: dict[str, Any],
    max_retries: int = 3,
    backoff_base: float = 1.5,
    label: str = "RPC",
) -> Optional[Any]:
    """POST *payload* and return its ``result`` member.

    Raises ``RpcExhaustedError`` once *max_retries* attempts have failed.
    """
    for attempt in range(max_retries):
        delay = backoff_base * (2 ** attempt)
        try:
            resp = await client.post(url, json=payload)
            if resp.status_code == 429:
                wait = _retry_after(resp, delay)
                logger.warning("%s rate-limited, retry in %.1fs", label, wait)
                await asyncio.sleep(wait)
                continue
            if resp.status_code == 403:
                logger.warning("%s 403 – endpoint may block this method", label)
                raise RpcExhaustedError(f"{label}: 403 Forbidden")
            resp.raise_for_status()
            body = resp.json()
            if "error" in body:
                logger.debug("%s error: %s", label, body["error"])
                return None
            return body.get("result")
        except httpx.HTTPStatusError as exc:
            logger.warning("%s HTTP %s", label, exc.response.status_code)
        except httpx.RequestError as exc:
            logger.warning("%s request failed: %s", label, exc)
        if attempt < max_retries - 1:
            await asyncio.sleep(delay)
    raise RpcExhaustedError(f"{label}: all retries exhausted")
