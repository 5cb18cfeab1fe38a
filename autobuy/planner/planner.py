"""Turns assembled candidates into the final list of orders."""

import logging
from typing import Optional

from autobuy.models import Candidate, Order
from autobuy.planner.fees import apply_fee_threshold

logger = logging.getLogger(__name__)


def to_order(candidate: Candidate) -> Order:
    return Order(
        product_id=candidate.product_id,
        symbol=candidate.symbol,
        isin=candidate.isin,
        quantity=candidate.quantity,
        price=candidate.price,
        fee=candidate.fee,
        currency=candidate.currency,
        limit_price=candidate.limit_price,
    )


def plan_orders(
    candidates: list[Candidate],
    investable_cash: float,
    max_fee_percentage: Optional[float] = None,
) -> list[Order]:
    """
    Allocate cash over candidates and return the orders worth placing.

    Candidates that end with a quantity of 0 are dropped. The returned orders
    keep configuration order and their total cost (value plus fee) never
    exceeds ``investable_cash``. An empty list means nothing should be bought.
    """
    allocated = apply_fee_threshold(candidates, investable_cash, max_fee_percentage)

    for candidate in allocated:
        logger.info(
            f"{candidate.symbol} ({candidate.isin}): {candidate.quantity} x {candidate.price:.2f}, "
            f"ratio {candidate.achieved_ratio:.4f} / target {candidate.target_ratio:.4f}"
        )

    orders = [to_order(c) for c in allocated if c.quantity > 0]
    spent = sum(o.value + o.fee for o in orders)
    logger.info(f"Planned {len(orders)} orders for {spent:.2f} of {investable_cash:.2f} investable cash")
    return orders
