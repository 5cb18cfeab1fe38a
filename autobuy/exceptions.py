"""Domain-specific exceptions."""


class AutobuyError(Exception):
    """Base exception for autobuy errors."""

    pass


class ConfigurationError(AutobuyError):
    """Raised when the configuration file is missing or invalid."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Configuration error: {message}")


class DataUnavailableError(AutobuyError):
    """Raised when product, price or fee data for a candidate cannot be retrieved."""

    def __init__(self, symbol: str, reason: str):
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Data unavailable for {symbol}: {reason}")


class InsufficientCashError(AutobuyError):
    """Raised when available cash is below the configured minimum investment."""

    def __init__(self, available: float, minimum: float, currency: str = ""):
        self.available = available
        self.minimum = minimum
        self.currency = currency
        suffix = f" {currency}" if currency else ""
        super().__init__(
            f"Cash in account ({available:.2f}{suffix}) is less than minimum cash funds ({minimum:.2f}{suffix})"
        )


class AllocationInfeasibleError(AutobuyError):
    """Raised when no candidate ends up with a positive quantity."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Nothing to buy: {reason}")


class BrokerError(AutobuyError):
    """Raised when a broker request fails."""

    pass


class LoginError(BrokerError):
    """Raised when logging in to the broker fails."""

    pass


class OrderPlacementError(BrokerError):
    """Raised when the broker rejects an order."""

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Order for product {product_id} failed: {reason}")
