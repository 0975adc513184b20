"""
PumpGuard package initializer.

Exposes the composition root.  Adapters (API, store, Telegram notifier,
log stream) should be imported explicitly from their respective modules.
"""

from .pipeline import Pipeline, build_pipeline  # noqa: F401

__all__ = ["Pipeline", "build_pipeline"]
