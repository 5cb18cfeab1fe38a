"""Tests for plan_orders - allocation, fee filter and finalization together."""

import pytest

from autobuy.models import Order
from autobuy.planner import plan_orders


class TestPlanOrders:
    def test_returns_orders_for_positive_quantities(self, make_candidate):
        candidates = [make_candidate("A", 0.5, 10.0), make_candidate("B", 0.5, 10.0)]

        orders = plan_orders(candidates, 95.0)

        assert all(isinstance(o, Order) for o in orders)
        assert [(o.symbol, o.quantity) for o in orders] == [("A", 5), ("B", 4)]
        assert sum(o.quantity for o in orders) <= 9

    def test_zero_quantity_candidates_dropped(self, make_candidate):
        candidates = [
            make_candidate("A", 0.5, 10.0, owned_value=100.0),
            make_candidate("B", 0.5, 10.0),
        ]

        orders = plan_orders(candidates, 50.0)

        assert [o.symbol for o in orders] == ["B"]

    def test_zero_cash_gives_no_orders(self, make_candidate):
        assert plan_orders([make_candidate("A", 1.0, 10.0)], 0.0) == []

    def test_budget_invariant_on_orders(self, make_candidate):
        candidates = [
            make_candidate("A", 0.7, 81.34, fee=1.0, owned_value=900.0),
            make_candidate("B", 0.3, 29.87, fee=1.0, owned_value=150.0),
        ]

        orders = plan_orders(candidates, 500.0, max_fee_percentage=1.0)

        assert sum(o.value + o.fee for o in orders) <= 500.0

    def test_fee_offender_excluded(self, make_candidate):
        candidates = [
            make_candidate("A", 0.5, 10.0, fee=0.0),
            make_candidate("B", 0.5, 50.0, fee=5.0),
        ]

        orders = plan_orders(candidates, 300.0, max_fee_percentage=4.0)

        assert [o.symbol for o in orders] == ["A"]

    def test_order_carries_price_fee_and_limit(self, make_candidate):
        candidate = make_candidate("A", 1.0, 10.02, fee=1.0)
        candidate.limit_price = 10.02

        (order,) = plan_orders([candidate], 100.0)

        assert order.product_id == "id-A"
        assert order.price == pytest.approx(10.02)
        assert order.fee == pytest.approx(1.0)
        assert order.limit_price == pytest.approx(10.02)
        assert order.quantity == 9
