"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from autobuy.config import Configuration
from autobuy.models import Candidate, OrderInfo, OwnedPosition, Product


def _make_candidate(symbol: str, target_ratio: float, price: float, fee: float = 0.0, owned_value: float = 0.0):
    """Create a candidate with identity fields derived from the symbol."""
    return Candidate(
        symbol=symbol,
        isin=f"IE000{symbol}",
        product_id=f"id-{symbol}",
        owned_value=owned_value,
        target_ratio=target_ratio,
        price=price,
        fee=fee,
    )


def _make_product(symbol: str, isin: str, exchange_id: int = 608, close_price: float = 10.0) -> Product:
    return Product(
        id=f"id-{symbol}",
        symbol=symbol,
        isin=isin,
        exchange_id=str(exchange_id),
        currency="EUR",
        close_price=close_price,
        vwd_id=f"vwd-{symbol}",
    )


@pytest.fixture
def configuration():
    """Two-ETF portfolio, 60/40, dry run."""
    return Configuration.model_validate(
        {
            "portfolio": [
                {"symbol": "IWDA", "isin": "IE00B4L5Y983", "exchange": 608, "ratio": 60},
                {"symbol": "EMIM", "isin": "IE00BKM4GZ66", "exchange": 608, "ratio": 40},
            ],
            "minCashInvest": 100,
            "maxCashInvest": 1000,
            "cashCurrency": "EUR",
            "dryRun": True,
            "orderDelaySeconds": 0,
        }
    )


@pytest.fixture
def broker():
    """Broker mock with prices 80 (IWDA) and 30 (EMIM), fee 1.0, nothing owned."""
    products = {
        "IE00B4L5Y983": _make_product("IWDA", "IE00B4L5Y983", close_price=79.0),
        "IE00BKM4GZ66": _make_product("EMIM", "IE00BKM4GZ66", close_price=29.0),
    }
    prices = {"id-IWDA": 80.0, "id-EMIM": 30.0}

    mock = MagicMock()
    mock.login = AsyncMock()
    mock.get_cash_funds = AsyncMock(return_value=500.0)
    mock.has_open_orders = AsyncMock(return_value=False)
    mock.get_owned_positions = AsyncMock(return_value=[])
    mock.search_product = AsyncMock(side_effect=lambda isin, exchange: products.get(isin))
    mock.get_order_info = AsyncMock(return_value=OrderInfo(transaction_fee=1.0, is_in_core_selection=True))
    mock.get_price = AsyncMock(side_effect=lambda product: prices.get(product.id))
    mock.place_order = AsyncMock(
        side_effect=lambda product_id, quantity, limit_price=None, dry_run=True: f"confirm-{product_id}"
    )
    return mock


@pytest.fixture
def owned_iwda():
    return [OwnedPosition(isin="IE00B4L5Y983", symbol="IWDA", value=400.0)]


@pytest.fixture
def make_candidate():
    """Factory for candidates: make_candidate(symbol, target_ratio, price, fee=0.0, owned_value=0.0)."""
    return _make_candidate


@pytest.fixture
def make_product():
    """Factory for products: make_product(symbol, isin, exchange_id=608, close_price=10.0)."""
    return _make_product
