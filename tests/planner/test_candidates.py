"""Tests for candidate assembly from broker data."""

from unittest.mock import AsyncMock

import pytest

from autobuy.exceptions import BrokerError, DataUnavailableError
from autobuy.models import OrderInfo, OwnedPosition, TargetPosition
from autobuy.planner.candidates import assemble_candidates, build_candidate, owned_value

IWDA = TargetPosition(symbol="IWDA", isin="IE00B4L5Y983", exchange=608, ratio=0.6)
EMIM = TargetPosition(symbol="EMIM", isin="IE00BKM4GZ66", exchange=608, ratio=0.4)


class TestOwnedValue:
    def test_sums_matching_positions(self):
        owned = [
            OwnedPosition(isin="IE00B4L5Y983", symbol="IWDA", value=100.0),
            OwnedPosition(isin="IE00B4L5Y983", symbol="IWDA", value=50.0),
            OwnedPosition(isin="IE00BKM4GZ66", symbol="EMIM", value=70.0),
        ]
        assert owned_value(IWDA, owned) == pytest.approx(150.0)

    def test_requires_symbol_match(self):
        """Same ISIN listed under another symbol does not count."""
        owned = [OwnedPosition(isin="IE00B4L5Y983", symbol="SWDA", value=100.0)]
        assert owned_value(IWDA, owned) == 0.0

    def test_isin_case_insensitive(self):
        owned = [OwnedPosition(isin="ie00b4l5y983", symbol="IWDA", value=10.0)]
        assert owned_value(IWDA, owned) == pytest.approx(10.0)

    def test_zero_when_not_owned(self):
        assert owned_value(IWDA, []) == 0.0


class TestBuildCandidate:
    @pytest.mark.asyncio
    async def test_builds_from_broker_data(self, broker, owned_iwda):
        candidate = await build_candidate(broker, IWDA, owned_iwda, price_buffer=0.02)

        assert candidate.symbol == "IWDA"
        assert candidate.product_id == "id-IWDA"
        assert candidate.owned_value == pytest.approx(400.0)
        assert candidate.target_ratio == pytest.approx(0.6)
        assert candidate.price == pytest.approx(80.02)
        assert candidate.fee == pytest.approx(1.0)
        assert candidate.quantity == 0

    @pytest.mark.asyncio
    async def test_limit_price_is_buffered_price(self, broker):
        candidate = await build_candidate(broker, IWDA, [], price_buffer=0.05, use_limit_order=True)
        assert candidate.limit_price == pytest.approx(80.05)

    @pytest.mark.asyncio
    async def test_market_order_has_no_limit(self, broker):
        candidate = await build_candidate(broker, IWDA, [], use_limit_order=False)
        assert candidate.limit_price is None
        assert candidate.price == pytest.approx(80.02)

    @pytest.mark.asyncio
    async def test_falls_back_to_close_price(self, broker):
        broker.get_price = AsyncMock(return_value=None)

        candidate = await build_candidate(broker, IWDA, [], price_buffer=0.02)

        assert candidate.price == pytest.approx(79.02)

    @pytest.mark.asyncio
    async def test_price_lookup_error_falls_back_to_close_price(self, broker):
        broker.get_price = AsyncMock(side_effect=BrokerError("GET chart returned 503"))

        candidate = await build_candidate(broker, IWDA, [], price_buffer=0.02)

        assert candidate.price == pytest.approx(79.02)

    @pytest.mark.asyncio
    async def test_price_lookup_error_without_close_price_is_unavailable(self, broker, make_product):
        broker.search_product = AsyncMock(return_value=make_product("IWDA", IWDA.isin, close_price=None))
        broker.get_price = AsyncMock(side_effect=BrokerError("GET chart returned 503"))

        with pytest.raises(DataUnavailableError):
            await build_candidate(broker, IWDA, [])

    @pytest.mark.asyncio
    async def test_no_price_at_all_is_unavailable(self, broker, make_product):
        broker.search_product = AsyncMock(return_value=make_product("IWDA", IWDA.isin, close_price=None))
        broker.get_price = AsyncMock(return_value=None)

        with pytest.raises(DataUnavailableError) as exc_info:
            await build_candidate(broker, IWDA, [])

        assert exc_info.value.symbol == "IWDA"

    @pytest.mark.asyncio
    async def test_product_not_found_is_unavailable(self, broker):
        broker.search_product = AsyncMock(return_value=None)

        with pytest.raises(DataUnavailableError):
            await build_candidate(broker, IWDA, [])

    @pytest.mark.asyncio
    async def test_missing_fee_is_unavailable(self, broker):
        broker.get_order_info = AsyncMock(return_value=OrderInfo(transaction_fee=None, is_in_core_selection=False))

        with pytest.raises(DataUnavailableError):
            await build_candidate(broker, IWDA, [])

    @pytest.mark.asyncio
    async def test_broker_error_is_unavailable(self, broker):
        broker.get_order_info = AsyncMock(side_effect=BrokerError("timeout"))

        with pytest.raises(DataUnavailableError) as exc_info:
            await build_candidate(broker, IWDA, [])

        assert isinstance(exc_info.value.__cause__, BrokerError)

    @pytest.mark.asyncio
    async def test_core_position_outside_core_selection_skipped(self, broker):
        broker.get_order_info = AsyncMock(return_value=OrderInfo(transaction_fee=3.0, is_in_core_selection=False))
        core_target = TargetPosition(symbol="IWDA", isin="IE00B4L5Y983", exchange=608, ratio=1.0, core=True)

        assert await build_candidate(broker, core_target, []) is None

    @pytest.mark.asyncio
    async def test_core_position_inside_core_selection_kept(self, broker):
        core_target = TargetPosition(symbol="IWDA", isin="IE00B4L5Y983", exchange=608, ratio=1.0, core=True)
        assert await build_candidate(broker, core_target, []) is not None


class TestAssembleCandidates:
    @pytest.mark.asyncio
    async def test_keeps_configuration_order(self, broker):
        candidates = await assemble_candidates(broker, [EMIM, IWDA], [])
        assert [c.symbol for c in candidates] == ["EMIM", "IWDA"]

    @pytest.mark.asyncio
    async def test_unavailable_candidate_excluded(self, broker, make_product):
        products = {IWDA.isin: make_product("IWDA", IWDA.isin)}
        broker.search_product = AsyncMock(side_effect=lambda isin, exchange: products.get(isin))

        candidates = await assemble_candidates(broker, [IWDA, EMIM], [])

        assert [c.symbol for c in candidates] == ["IWDA"]

    @pytest.mark.asyncio
    async def test_all_unavailable_gives_empty_list(self, broker):
        broker.search_product = AsyncMock(return_value=None)
        assert await assemble_candidates(broker, [IWDA, EMIM], []) == []
