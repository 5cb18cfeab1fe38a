"""
Buyer - one complete autobuy run.

Usage:
    buyer = Buyer(broker, configuration)
    report = await buyer.run()

A run normalizes the desired portfolio, logs in, checks cash and open orders,
assembles candidates, allocates the investable cash and places the orders.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from autobuy.config import Configuration
from autobuy.exceptions import AllocationInfeasibleError, InsufficientCashError, OrderPlacementError
from autobuy.logging_context import clear_run_id, set_run_id
from autobuy.models import Order, RunReport
from autobuy.planner import assemble_candidates, plan_orders

logger = logging.getLogger(__name__)


async def execute_orders(
    broker,
    orders: list[Order],
    dry_run: bool = True,
    delay_seconds: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> tuple[dict[str, str], dict[str, str]]:
    """
    Place orders one by one; a rejected order does not stop the rest.

    Returns:
        Tuple of (confirmations, failures), both keyed by product id
    """
    confirmations: dict[str, str] = {}
    failures: dict[str, str] = {}

    for i, order in enumerate(orders):
        if i > 0 and delay_seconds > 0:
            await sleep(delay_seconds)
        try:
            confirmation = await broker.place_order(order.product_id, order.quantity, order.limit_price, dry_run)
        except OrderPlacementError as e:
            logger.error(f"Failed to place order for {order.quantity} x {order.symbol}: {e}")
            failures[order.product_id] = str(e)
            continue

        order_kind = "limit" if order.limit_price is not None else "market"
        logger.info(
            f"Successfully placed {order_kind} order for {order.quantity} x {order.symbol} "
            f"for {order.value:.2f} {order.currency} ({confirmation})"
        )
        confirmations[order.product_id] = confirmation

    return confirmations, failures


class Buyer:
    """Runs the autobuy flow against a broker with an immutable configuration."""

    def __init__(
        self,
        broker,
        configuration: Configuration,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._broker = broker
        self._configuration = configuration
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> Optional[RunReport]:
        """Run a buy unless one is already in progress (returns None when skipped)."""
        if self.running:
            logger.warning("Previous autobuy run is still in progress, skipping this run")
            return None

        async with self._lock:
            set_run_id()
            try:
                return await self.buy()
            finally:
                clear_run_id()

    async def buy(self) -> RunReport:
        """
        Execute one buy run.

        Raises:
            InsufficientCashError: Cash is below the configured minimum
            AllocationInfeasibleError: No candidate can be bought
            BrokerError: Login or account requests failed
        """
        config = self._configuration
        currency = config.cash_currency
        logger.info(f"Started DEGIRO Autobuy at {datetime.now():%Y-%m-%d %H:%M:%S}")

        targets = config.target_positions()
        logger.info(
            "Desired portfolio: " + ", ".join(f"{t.symbol} ({t.ratio * 100:.2f}%)" for t in targets)
        )

        await self._broker.login()

        cash = await self._broker.get_cash_funds(currency)
        if cash < config.min_cash_invest and not config.use_margin:
            raise InsufficientCashError(cash, config.min_cash_invest, currency)

        investable_cash = config.investable_cash(cash)
        logger.info(f"Cash in account: {cash:.2f} {currency}, limiting investment to {investable_cash:.2f} {currency}")

        if not config.allow_open_orders and await self._broker.has_open_orders():
            logger.info("There are currently open orders, doing nothing.")
            return RunReport(cash, investable_cash, [], {}, {}, config.dry_run)

        owned = await self._broker.get_owned_positions()
        candidates = await assemble_candidates(
            self._broker,
            targets,
            owned,
            price_buffer=config.price_buffer,
            use_limit_order=config.use_limit_order,
        )
        if not candidates:
            raise AllocationInfeasibleError("no target position has product, price and fee data")

        orders = plan_orders(candidates, investable_cash, config.max_fee_percentage)
        if not orders:
            raise AllocationInfeasibleError("no candidate gets a positive quantity within the cash and fee limits")

        confirmations, failures = await execute_orders(
            self._broker,
            orders,
            dry_run=config.dry_run,
            delay_seconds=config.order_delay_seconds,
            sleep=self._sleep,
        )

        report = RunReport(cash, investable_cash, orders, confirmations, failures, config.dry_run)
        logger.info(
            f"Finished DEGIRO Autobuy: {len(confirmations)}/{len(orders)} orders placed "
            f"for {report.total_cost:.2f} {currency}{' (dry run)' if config.dry_run else ''}"
        )
        return report
