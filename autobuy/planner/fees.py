"""
Fee threshold filter - drops purchases whose fixed fee is too large a share of the order.

Usage:
    candidates = apply_fee_threshold(candidates, investable_cash=500.0, max_fee_percentage=1.0)
"""

import logging
from typing import Optional

from autobuy.models import Candidate
from autobuy.planner.allocation import allocate

logger = logging.getLogger(__name__)


def worst_fee_candidate(candidates: list[Candidate]) -> Optional[Candidate]:
    """Candidate with the highest fee percentage among those buying; first configured wins ties."""
    buying = [(i, c) for i, c in enumerate(candidates) if c.quantity > 0]
    if not buying:
        return None
    _, worst = max(buying, key=lambda item: (item[1].fee_percentage, -item[0]))
    return worst


def apply_fee_threshold(
    candidates: list[Candidate],
    investable_cash: float,
    max_fee_percentage: Optional[float] = None,
) -> list[Candidate]:
    """
    Allocate, then repeatedly drop the worst fee offender and re-allocate.

    Each pass removes one candidate, so at most ``len(candidates)`` passes run.
    Cash freed by a removed candidate is redistributed over the rest.

    Args:
        candidates: Candidates in configuration order
        investable_cash: Cash available for this run
        max_fee_percentage: Maximum accepted fee percentage, None disables the filter

    Returns:
        The remaining candidates with their allocated quantities
    """
    remaining = list(candidates)

    while remaining:
        allocate(remaining, investable_cash)
        if max_fee_percentage is None:
            return remaining

        worst = worst_fee_candidate(remaining)
        if worst is None:
            return remaining

        worst_pct = worst.fee_percentage
        if worst_pct <= max_fee_percentage:
            return remaining

        logger.info(
            f"Dropping {worst.symbol} ({worst.isin}): fee {worst.fee:.2f} is {worst_pct:.2f}% of "
            f"{worst.quantity} x {worst.price:.2f}, above maximum {max_fee_percentage:.2f}%"
        )
        remaining = [c for c in remaining if c is not worst]

    return remaining
