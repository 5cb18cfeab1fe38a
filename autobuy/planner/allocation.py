"""Ratio-matching allocator.

Assigns an integer purchase quantity to each candidate so the resulting
portfolio weights approach the target ratios without spending more than the
investable cash:

1. Give every candidate the largest quantity that keeps it at or below its
   target share of the total value (owned value + investable cash), capped at
   what a single order could afford on its own.
2. Take units away from the most overweight buys while the total cost
   (including fixed fees) is over budget.
3. Greedy top-up: add single units to the most underweight candidate until the
   next unit no longer fits.
4. Round-robin top-up: sweep all candidates, most underweight first, adding a
   unit wherever it still fits, until a sweep adds nothing.

Equal ratio errors are ordered by configuration position so identical inputs
always give identical quantities.
"""

from __future__ import annotations

import logging
import math

from autobuy.models import Candidate

logger = logging.getLogger(__name__)


def total_cost(candidates: list[Candidate]) -> float:
    """Cash needed to buy every candidate's quantity, fees included."""
    return sum(c.cost for c in candidates)


def _update_ratio(candidate: Candidate, total_value: float) -> None:
    projected = candidate.owned_value + candidate.quantity * candidate.price
    candidate.achieved_ratio = projected / total_value if total_value > 0 else 0.0
    candidate.ratio_error = candidate.target_ratio - candidate.achieved_ratio


def _most_underweight_first(candidates: list[Candidate]) -> list[tuple[int, Candidate]]:
    return sorted(enumerate(candidates), key=lambda item: (-item[1].ratio_error, item[0]))


def _most_overweight_first(candidates: list[Candidate]) -> list[tuple[int, Candidate]]:
    return sorted(enumerate(candidates), key=lambda item: (item[1].ratio_error, -item[0]))


def initial_quantity(candidate: Candidate, total_value: float) -> int:
    """Largest quantity that does not push the position beyond its target share."""
    missing_value = candidate.target_ratio * total_value - candidate.owned_value
    if missing_value <= 0:
        return 0
    return math.floor(missing_value / candidate.price)


def affordable_quantity(candidate: Candidate, investable_cash: float) -> int:
    """Most units one order can buy with all of the cash, fee included."""
    if investable_cash <= candidate.fee:
        return 0
    return math.floor((investable_cash - candidate.fee) / candidate.price)


def _fit_budget(candidates: list[Candidate], investable_cash: float, total_value: float) -> None:
    while total_cost(candidates) > investable_cash:
        buying = [(i, c) for i, c in _most_overweight_first(candidates) if c.quantity > 0]
        if not buying:
            return
        _, candidate = buying[0]
        candidate.quantity -= 1
        _update_ratio(candidate, total_value)


def _greedy_top_up(candidates: list[Candidate], investable_cash: float, total_value: float) -> int:
    added = 0
    while True:
        _, candidate = _most_underweight_first(candidates)[0]
        candidate.quantity += 1
        if total_cost(candidates) > investable_cash:
            candidate.quantity -= 1
            return added
        _update_ratio(candidate, total_value)
        added += 1


def _round_robin_top_up(candidates: list[Candidate], investable_cash: float, total_value: float) -> int:
    added = 0
    while True:
        tried: set[int] = set()
        added_in_sweep = 0
        for _ in range(len(candidates)):
            index, candidate = next((i, c) for i, c in _most_underweight_first(candidates) if i not in tried)
            tried.add(index)
            candidate.quantity += 1
            if total_cost(candidates) > investable_cash:
                candidate.quantity -= 1
                continue
            _update_ratio(candidate, total_value)
            added_in_sweep += 1
        if added_in_sweep == 0:
            return added
        added += added_in_sweep


def allocate(candidates: list[Candidate], investable_cash: float) -> list[Candidate]:
    """Set each candidate's quantity in place and return the same list.

    Args:
        candidates: Candidates in configuration order. Prices must be positive.
        investable_cash: Cash available for this run.

    Returns:
        The candidates, with quantity, achieved_ratio and ratio_error updated.
        The sum of ``quantity * price + fee`` over candidates with a positive
        quantity never exceeds ``investable_cash``.
    """
    if not candidates:
        return candidates

    for candidate in candidates:
        if candidate.price <= 0:
            raise ValueError(f"Price of {candidate.symbol} must be positive, got {candidate.price}")
        if candidate.fee < 0:
            raise ValueError(f"Fee of {candidate.symbol} must not be negative, got {candidate.fee}")

    total_value = sum(c.owned_value for c in candidates) + max(investable_cash, 0.0)

    if investable_cash <= 0:
        for candidate in candidates:
            candidate.quantity = 0
            _update_ratio(candidate, total_value)
        return candidates

    for candidate in candidates:
        candidate.quantity = min(
            initial_quantity(candidate, total_value), affordable_quantity(candidate, investable_cash)
        )
        _update_ratio(candidate, total_value)

    _fit_budget(candidates, investable_cash, total_value)
    greedy = _greedy_top_up(candidates, investable_cash, total_value)
    round_robin = _round_robin_top_up(candidates, investable_cash, total_value)

    logger.debug(
        f"Allocated {sum(c.quantity for c in candidates)} units for {total_cost(candidates):.2f} "
        f"of {investable_cash:.2f} (greedy +{greedy}, round-robin +{round_robin})"
    )
    return candidates
