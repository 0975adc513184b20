"""Tests for the structured logging configuration."""

from __future__ import annotations

import json
import logging
import sys

from pumpguard.logging_config import (
    JSONFormatter,
    _SignatureFilter,
    setup_logging,
    short_address,
    signature_ctx,
)

_SIG = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"


def _record(name: str = "test", level: int = logging.INFO, msg: str = "hi", exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=exc_info,
    )


class TestShortAddress:

    def test_shortens_long_values(self):
        assert short_address("AbCdEfGhIjKlMnOpQrStUvWxYz") == "AbCd...WxYz"

    def test_custom_width(self):
        assert short_address(_SIG, 8) == f"{_SIG[:8]}...{_SIG[-8:]}"

    def test_short_values_unchanged(self):
        assert short_address("abc") == "abc"
        assert short_address("-") == "-"

    def test_empty(self):
        assert short_address("") == "unknown"


class TestSignatureFilter:

    def test_injects_signature(self):
        token = signature_ctx.set(_SIG)
        try:
            record = _record()
            _SignatureFilter().filter(record)
        finally:
            signature_ctx.reset(token)
        assert record.signature == _SIG  # type: ignore[attr-defined]
        assert record.sig_short == short_address(_SIG, 8)  # type: ignore[attr-defined]

    def test_default_dash(self):
        record = _record()
        _SignatureFilter().filter(record)
        assert record.sig_short == "-"  # type: ignore[attr-defined]


class TestJSONFormatter:

    def test_basic_output(self):
        token = signature_ctx.set("sig123")
        try:
            data = json.loads(JSONFormatter().format(
                _record(name="pumpguard.resolver", level=logging.WARNING, msg="dropped")
            ))
        finally:
            signature_ctx.reset(token)
        assert data["level"] == "WARNING"
        assert data["logger"] == "pumpguard.resolver"
        assert data["msg"] == "dropped"
        assert data["signature"] == "sig123"

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(level=logging.ERROR, msg="fail", exc_info=sys.exc_info())
        data = json.loads(JSONFormatter().format(record))
        assert "ValueError" in data["exception"]


class TestSetupLogging:

    def test_installs_one_handler(self):
        setup_logging()
        setup_logging()
        root = logging.getLogger()
        assert len(root.handlers) == 1

    def test_text_lines_carry_short_signature(self, capsys):
        setup_logging()
        token = signature_ctx.set(_SIG)
        try:
            logging.getLogger("pumpguard.pipeline").warning("resolution failed")
        finally:
            signature_ctx.reset(token)
            logging.getLogger().handlers.clear()
        out = capsys.readouterr().out
        assert f"({short_address(_SIG, 8)}) resolution failed" in out
