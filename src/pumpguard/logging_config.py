"""
Logging setup for PumpGuard.

Records emitted while an event is being resolved carry that transaction's
signature, taken from ``signature_ctx`` (``-`` outside event handling).
``LOG_FORMAT=json`` switches the root handler to one JSON object per line.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar

from config import LOG_FORMAT, LOG_LEVEL

signature_ctx: ContextVar[str] = ContextVar("signature", default="-")

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(sig_short)s) %(message)s"


def short_address(address: str, chars: int = 4) -> str:
    """``AbCd...WxYz`` form of an address or signature for log lines."""
    if not address:
        return "unknown"
    if address == "-" or len(address) <= chars * 2 + 3:
        return address
    return f"{address[:chars]}...{address[-chars:]}"


class _SignatureFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        signature = signature_ctx.get()
        record.signature = signature  # type: ignore[attr-defined]
        record.sig_short = short_address(signature, 8)  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "signature": getattr(record, "signature", signature_ctx.get()),
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging() -> None:
    """Replace the root handlers with a single stdout handler."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_SignatureFilter())
    if LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
