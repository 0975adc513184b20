"""
Command line interface for PumpGuard.

Usage::

    python src/main.py              # run the engine, alerts to log / Telegram
    python src/main.py --api        # run the engine behind the REST API
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

# Ensure ``src/`` is on the import path
sys.path.insert(0, os.path.dirname(__file__))

import config
from pumpguard.logging_config import setup_logging
from pumpguard.pipeline import build_pipeline

logger = logging.getLogger("pumpguard")


async def _run(stats_interval: float) -> None:
    """Run the log stream and the engine until cancelled."""
    pipeline = build_pipeline()
    await pipeline.start()
    stream = asyncio.create_task(pipeline.source.run(), name="log_stream")
    logger.info(
        "Monitoring program %s via %s", config.PUMP_PROGRAM_ID, config.SOLANA_WS_ENDPOINT
    )
    try:
        while True:
            await asyncio.sleep(stats_interval)
            logger.info("Stats: %s", json.dumps(pipeline.get_stats(), default=str))
    finally:
        pipeline.source.stop()
        stream.cancel()
        try:
            await stream
        except asyncio.CancelledError:
            pass
        await pipeline.close()


def main() -> None:
    """Entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Real-time rug-pull and whale monitoring for pump.fun tokens"
    )
    parser.add_argument(
        "--api",
        action="store_true",
        help="Serve the control / query API (the engine runs inside it)",
    )
    parser.add_argument(
        "--stats-interval",
        type=float,
        default=300.0,
        help="Seconds between stats log lines (engine-only mode)",
    )
    args = parser.parse_args()
    setup_logging()

    if args.api:
        import uvicorn

        uvicorn.run("pumpguard.api:app", host=config.API_HOST, port=config.API_PORT)
        return

    try:
        asyncio.run(_run(args.stats_interval))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
