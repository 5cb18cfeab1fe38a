"""
Planner package - allocation of investable cash over target positions.

Usage:
    candidates = await assemble_candidates(broker, targets, owned, price_buffer=0.02)
    orders = plan_orders(candidates, investable_cash, max_fee_percentage=1.0)
"""

from autobuy.planner.allocation import allocate, total_cost
from autobuy.planner.candidates import assemble_candidates, build_candidate
from autobuy.planner.fees import apply_fee_threshold, worst_fee_candidate
from autobuy.planner.planner import plan_orders

__all__ = [
    "allocate",
    "apply_fee_threshold",
    "assemble_candidates",
    "build_candidate",
    "plan_orders",
    "total_cost",
    "worst_fee_candidate",
]
