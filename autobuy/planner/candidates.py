"""Candidate assembly - one allocation candidate per target position."""

from __future__ import annotations

import logging
from typing import Optional

from autobuy.exceptions import BrokerError, DataUnavailableError
from autobuy.models import Candidate, OwnedPosition, TargetPosition

logger = logging.getLogger(__name__)

# Added to the quoted price so the computed quantity stays affordable if the price moves up
DEFAULT_PRICE_BUFFER = 0.02


def owned_value(target: TargetPosition, owned: list[OwnedPosition]) -> float:
    """Total value of owned positions matching the target by ISIN and symbol."""
    return sum(p.value for p in owned if p.isin.upper() == target.isin.upper() and p.symbol == target.symbol)


async def build_candidate(
    broker,
    target: TargetPosition,
    owned: list[OwnedPosition],
    price_buffer: float = DEFAULT_PRICE_BUFFER,
    use_limit_order: bool = True,
) -> Optional[Candidate]:
    """
    Fetch product, fee and price data for one target position.

    Returns:
        The candidate, or None when a core-only position is not commission free

    Raises:
        DataUnavailableError: If the product, its price or its fee cannot be retrieved
    """
    try:
        product = await broker.search_product(target.isin, target.exchange)
        if product is None:
            raise DataUnavailableError(
                target.symbol, f"no matching product for {target.isin} on exchange {target.exchange}"
            )

        order_info = await broker.get_order_info(product.id)
        if target.core and not order_info.is_in_core_selection:
            logger.info(
                f"Symbol {target.symbol} ({target.isin}) on exchange {product.exchange_id} is configured as core, "
                f"but does not have core selection transaction fees, ignoring."
            )
            return None
    except BrokerError as e:
        raise DataUnavailableError(target.symbol, str(e)) from e

    try:
        price = await broker.get_price(product)
    except BrokerError as e:
        logger.warning(f"Price lookup for {target.symbol} failed, using close price: {e}")
        price = None

    if price is None:
        price = product.close_price
    if price is None or price <= 0:
        raise DataUnavailableError(target.symbol, f"no price for product {product.id}")
    if order_info.transaction_fee is None or order_info.transaction_fee < 0:
        raise DataUnavailableError(target.symbol, f"no transaction fee for product {product.id}")

    buffered_price = round(price + price_buffer, 4)

    return Candidate(
        symbol=target.symbol,
        isin=target.isin,
        product_id=product.id,
        owned_value=owned_value(target, owned),
        target_ratio=target.ratio,
        price=buffered_price,
        fee=order_info.transaction_fee,
        currency=product.currency,
        limit_price=buffered_price if use_limit_order else None,
    )


async def assemble_candidates(
    broker,
    targets: list[TargetPosition],
    owned: list[OwnedPosition],
    price_buffer: float = DEFAULT_PRICE_BUFFER,
    use_limit_order: bool = True,
) -> list[Candidate]:
    """Build candidates for all targets in configuration order, skipping unavailable ones."""
    candidates = []
    for target in targets:
        try:
            candidate = await build_candidate(broker, target, owned, price_buffer, use_limit_order)
        except DataUnavailableError as e:
            logger.error(f"{e}, excluding {target.symbol} from this run")
            continue
        if candidate is None:
            continue
        logger.info(
            f"Symbol {candidate.symbol} ({candidate.isin}): owned {candidate.owned_value:.2f}, "
            f"price {candidate.price:.2f} {candidate.currency}, fee {candidate.fee:.2f}"
        )
        candidates.append(candidate)
    return candidates
