"""Data models shared by the planner, broker and buyer."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TargetPosition:
    """A desired portfolio position with its normalized target ratio."""

    symbol: str
    isin: str
    exchange: int
    ratio: float  # Fraction of total desired portfolio value
    core: bool = False  # Only buy while commission-free (core selection)


@dataclass(frozen=True)
class OwnedPosition:
    """A position currently held at the broker."""

    isin: str
    symbol: str
    value: float  # Owned units * current price


@dataclass(frozen=True)
class Product:
    """A tradable product returned by the broker's product search."""

    id: str
    symbol: str
    isin: str
    exchange_id: str
    currency: str
    close_price: Optional[float] = None
    vwd_id: Optional[str] = None


@dataclass(frozen=True)
class OrderInfo:
    """Fee information obtained by checking (not placing) an order."""

    transaction_fee: Optional[float]  # None when the broker did not report one
    is_in_core_selection: bool


@dataclass
class Candidate:
    """Working allocation record for one target instrument during a single run."""

    symbol: str
    isin: str
    product_id: str
    owned_value: float
    target_ratio: float
    price: float  # Execution price plus buffer
    fee: float  # Fixed fee per order
    currency: str = "EUR"
    limit_price: Optional[float] = None  # None places a market order
    quantity: int = 0
    achieved_ratio: float = 0.0
    ratio_error: float = 0.0  # target - achieved (positive = underweight)

    @property
    def order_value(self) -> float:
        """Notional value of the order, excluding fee."""
        return self.quantity * self.price

    @property
    def cost(self) -> float:
        """Cash consumed by this candidate, fee included only when buying."""
        if self.quantity <= 0:
            return 0.0
        return self.order_value + self.fee

    @property
    def fee_percentage(self) -> Optional[float]:
        """Fee as a percentage of order value, None when nothing is bought."""
        if self.quantity <= 0:
            return None
        return self.fee / self.order_value * 100


@dataclass(frozen=True)
class Order:
    """A finalized order handed to the executor."""

    product_id: str
    symbol: str
    isin: str
    quantity: int
    price: float
    fee: float
    currency: str = "EUR"
    limit_price: Optional[float] = None

    @property
    def value(self) -> float:
        return self.quantity * self.price


@dataclass
class RunReport:
    """Summary of one buy run."""

    cash: float
    investable_cash: float
    orders: list[Order]
    confirmations: dict[str, str]  # product_id -> confirmation
    failures: dict[str, str]  # product_id -> error message
    dry_run: bool

    @property
    def total_cost(self) -> float:
        return sum(o.value + o.fee for o in self.orders)
