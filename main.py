#!/usr/bin/env python3
"""
DEGIRO Autobuy - Entry point for running the application.

Usage:
    python main.py              # Run the scheduler (cron from SCHEDULE)
    python main.py --once       # Run a single buy and exit
    python main.py --dry-run    # Never submit orders, whatever config.json says
"""

import argparse
import asyncio
import logging
import sys

from autobuy import AutobuyError, Buyer, DegiroBroker, EnvSettings, load_configuration
from autobuy.logging_context import setup_logging
from autobuy.scheduler import buy_on_launch, init_scheduler, run_buy_job, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


async def run_once(buyer: Buyer) -> int:
    """Run a single buy. Returns the process exit code."""
    try:
        report = await run_buy_job(buyer)
    except AutobuyError as e:
        logger.error(f"Autobuy run failed: {e}")
        return 1
    if report and report.failures:
        return 1
    return 0


async def run_scheduled(buyer: Buyer, settings: EnvSettings) -> None:
    """Run the scheduler until cancelled."""
    init_scheduler(buyer, settings.schedule)
    start_scheduler()
    try:
        if settings.buy_on_launch:
            try:
                await buy_on_launch(buyer)
            except AutobuyError as e:
                logger.error(f"Autobuy run on launch failed: {e}")
        await asyncio.Event().wait()
    finally:
        stop_scheduler()


async def run(args: argparse.Namespace, settings: EnvSettings) -> int:
    configuration = load_configuration(settings.config_file)
    if args.dry_run:
        configuration = configuration.model_copy(update={"dry_run": True})
    if configuration.dry_run:
        logger.info("Dry run enabled, orders will be logged but not placed")

    broker = DegiroBroker.from_settings(settings)
    buyer = Buyer(broker, configuration)
    try:
        if args.once:
            return await run_once(buyer)
        await run_scheduled(buyer, settings)
        return 0
    finally:
        await broker.close()


def main():
    parser = argparse.ArgumentParser(description="DEGIRO Autobuy")
    parser.add_argument("--once", action="store_true", help="Run a single buy and exit")
    parser.add_argument("--dry-run", action="store_true", help="Log orders without placing them")
    args = parser.parse_args()

    settings = EnvSettings()
    setup_logging(settings.log_level, settings.log_file)

    try:
        sys.exit(asyncio.run(run(args, settings)))
    except AutobuyError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
