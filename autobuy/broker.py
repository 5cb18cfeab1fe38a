"""
Broker - DEGIRO web API client.

Usage:
    broker = DegiroBroker.from_settings(EnvSettings())
    await broker.login()
    cash = await broker.get_cash_funds("EUR")
    product = await broker.search_product("IE00B4L5Y983", 608)
    confirmation = await broker.place_order(product.id, 3, limit_price=84.12, dry_run=False)
"""

import logging
from pathlib import Path
from typing import Any, Optional

import httpx
import pyotp

from autobuy.config import EnvSettings
from autobuy.exceptions import BrokerError, LoginError, OrderPlacementError
from autobuy.models import OrderInfo, OwnedPosition, Product

logger = logging.getLogger(__name__)

BASE_URL = "https://trader.degiro.nl"
SESSION_COOKIE_DOMAIN = "trader.degiro.nl"
LOGIN_PATH = "/login/secure/login"
TOTP_LOGIN_PATH = "/login/secure/login/totp"
CONFIG_PATH = "/login/secure/config"
CHART_URL = "https://charting.vwdservices.com/hchart/v1/deGiro/data.js"

ETF_PRODUCT_TYPE = 131

# Order encoding used by the trading API
BUY = "BUY"
ORDER_TYPE_LIMITED = 0
ORDER_TYPE_MARKET = 2
TIME_TYPE_DAY = 1

# Login status codes
STATUS_SUCCESS = 0
STATUS_BAD_CREDENTIALS = 3
STATUS_TOTP_NEEDED = 6

CORE_SELECTION_NOTICE = "trader.orderConfirmation.freeETFCommissionNotice"


def _row_values(row: dict) -> dict:
    """Flatten a DEGIRO ``{"name": ..., "value": ...}`` row into a plain dict."""
    return {item.get("name"): item.get("value") for item in row.get("value", [])}


class DegiroBroker:
    """Client for the DEGIRO endpoints needed to buy into a target portfolio."""

    def __init__(
        self,
        username: str,
        password: str,
        otp_seed: Optional[str] = None,
        session_file: Optional[Path] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._username = username
        self._password = password
        self._otp_seed = otp_seed
        self._session_file = Path(session_file) if session_file else None
        self._client = client or httpx.AsyncClient(base_url=BASE_URL, timeout=timeout)
        self._session_id: Optional[str] = None
        self._int_account: Optional[int] = None
        self._account_id: Optional[int] = None
        self._trading_url: Optional[str] = None
        self._pa_url: Optional[str] = None
        self._product_search_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: EnvSettings) -> "DegiroBroker":
        return cls(
            username=settings.degiro_username,
            password=settings.degiro_password,
            otp_seed=settings.degiro_otp_seed,
            session_file=settings.session_file,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    @property
    def logged_in(self) -> bool:
        return self._session_id is not None and self._int_account is not None

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request and return its decoded JSON body."""
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise BrokerError(f"{method} {url} returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise BrokerError(f"{method} {url} failed: {e}") from e

    def _account_params(self) -> dict:
        if not self.logged_in:
            raise BrokerError("Not logged in")
        return {"intAccount": self._int_account, "sessionId": self._session_id}

    def _trading_endpoint(self, path: str) -> str:
        return f"{self._trading_url}{path};jsessionid={self._session_id}"

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def login(self) -> None:
        """
        Log in, reusing a stored session when it is still valid.

        Raises:
            LoginError: If credentials are rejected or a TOTP code is required but not configured
        """
        if self.logged_in:
            return

        stored = self._read_session()
        if stored:
            try:
                await self._start_session(stored)
                logger.info("Resumed stored session")
                return
            except BrokerError as e:
                logger.info(f"Stored session is invalid or expired, logging in with credentials ({e})")

        logger.info("Logging in")
        session_id = await self._login_with_credentials()
        await self._start_session(session_id)
        self._save_session()
        logger.info("Successfully logged in")

    async def _login_with_credentials(self) -> str:
        payload: dict[str, Any] = {
            "username": self._username,
            "password": self._password,
            "isPassCodeReset": False,
            "isRedirectToMobile": False,
            "queryParams": {},
        }
        path = LOGIN_PATH
        if self._otp_seed:
            payload["oneTimePassword"] = pyotp.TOTP(self._otp_seed).now()
            path = TOTP_LOGIN_PATH

        try:
            response = await self._client.post(path, json=payload)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LoginError(f"Error logging in: {e}") from e

        status = body.get("status")
        if status == STATUS_TOTP_NEEDED:
            raise LoginError("No TOTP seed provided. Please add DEGIRO_OTP_SEED to the environment variables.")
        if status == STATUS_BAD_CREDENTIALS:
            raise LoginError("Invalid credentials. Please check if the environment variables are correct.")
        session_id = body.get("sessionId")
        if status != STATUS_SUCCESS or not session_id:
            raise LoginError(f"Error logging in: {body.get('statusText', status)}")
        return session_id

    async def _start_session(self, session_id: str) -> None:
        """Load account configuration for a session; fails if the session is not valid."""
        # Only sent to DEGIRO, never to the charting service
        self._client.cookies.set("JSESSIONID", session_id, domain=SESSION_COOKIE_DOMAIN)
        config = (await self._request("GET", CONFIG_PATH)).get("data", {})
        self._trading_url = config.get("tradingUrl")
        self._pa_url = config.get("paUrl")
        self._product_search_url = config.get("productSearchUrl")
        if not self._trading_url or not self._pa_url or not self._product_search_url:
            raise BrokerError("Incomplete account configuration")

        client = (await self._request("GET", f"{self._pa_url}client", params={"sessionId": session_id})).get(
            "data", {}
        )
        if client.get("intAccount") is None:
            raise BrokerError("Account data has no intAccount")

        self._session_id = session_id
        self._int_account = client["intAccount"]
        self._account_id = client.get("id")

    def _read_session(self) -> Optional[str]:
        if self._session_file is None:
            return None
        try:
            return self._session_file.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Error while reading session file: {e}")
            return None

    def _save_session(self) -> None:
        if self._session_file is None or not self._session_id:
            return
        try:
            self._session_file.parent.mkdir(parents=True, exist_ok=True)
            self._session_file.write_text(self._session_id, encoding="utf-8")
        except OSError as e:
            logger.error(f"Error while writing session file: {e}")

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    async def _update(self, **sections: int) -> dict:
        return await self._request(
            "GET",
            f"{self._trading_url}v5/update/{self._int_account};jsessionid={self._session_id}",
            params={**self._account_params(), **sections},
        )

    async def get_cash_funds(self, currency: str) -> float:
        """Get the cash balance in ``currency``."""
        response = await self._update(cashFunds=0)
        for row in response.get("cashFunds", {}).get("value", []):
            values = _row_values(row)
            if values.get("currencyCode") == currency:
                return float(values.get("value") or 0.0)
        raise BrokerError(f"No cash funds in {currency}")

    async def get_owned_positions(self) -> list[OwnedPosition]:
        """Get held product positions with their current value."""
        response = await self._update(portfolio=0)
        rows = [_row_values(row) for row in response.get("portfolio", {}).get("value", [])]
        rows = [r for r in rows if r.get("positionType") == "PRODUCT" and (r.get("size") or 0) > 0]
        if not rows:
            return []

        details = await self._get_products_info([str(r["id"]) for r in rows])
        positions = []
        for row in rows:
            product = details.get(str(row["id"]))
            if not product:
                logger.warning(f"No product details for position {row['id']}, ignoring")
                continue
            positions.append(
                OwnedPosition(
                    isin=product.get("isin", ""),
                    symbol=product.get("symbol", ""),
                    value=float(row.get("value") or 0.0),
                )
            )
        return positions

    async def has_open_orders(self) -> bool:
        response = await self._update(orders=0)
        return len(response.get("orders", {}).get("value", [])) > 0

    # -------------------------------------------------------------------------
    # Products & Market Data
    # -------------------------------------------------------------------------

    async def _get_products_info(self, product_ids: list[str]) -> dict[str, dict]:
        response = await self._request(
            "POST",
            f"{self._product_search_url}v5/products/info",
            params=self._account_params(),
            json=product_ids,
        )
        return response.get("data", {})

    async def search_product(self, isin: str, exchange_id: int) -> Optional[Product]:
        """Find the ETF with ``isin`` listed on ``exchange_id``."""
        response = await self._request(
            "GET",
            f"{self._product_search_url}v5/products/lookup",
            params={**self._account_params(), "searchText": isin, "productTypeId": ETF_PRODUCT_TYPE, "limit": 50},
        )
        for raw in response.get("products", []):
            if raw.get("isin", "").lower() == isin.lower() and str(raw.get("exchangeId")) == str(exchange_id):
                return Product(
                    id=str(raw["id"]),
                    symbol=raw.get("symbol", ""),
                    isin=raw.get("isin", isin),
                    exchange_id=str(raw.get("exchangeId")),
                    currency=raw.get("currency", ""),
                    close_price=raw.get("closePrice"),
                    vwd_id=raw.get("vwdId"),
                )
        return None

    async def get_price(self, product: Product) -> Optional[float]:
        """Get the last traded price from the charting service, None if unavailable."""
        if not product.vwd_id:
            return None
        params = {
            "requestid": "1",
            "resolution": "PT1M",
            "period": "P1D",
            "series": f"issueid:{product.vwd_id}",
            "format": "json",
            "userToken": str(self._account_id),
        }
        response = await self._request("GET", CHART_URL, params=params, headers={"Origin": "https://trader.degiro.nl"})
        try:
            price = response["series"][0]["data"]["lastPrice"]
        except (KeyError, IndexError, TypeError):
            logger.warning(f"No last price for product {product.id} ({product.symbol})")
            return None
        return float(price) if price is not None else None

    def _order_payload(self, product_id: str, quantity: int, limit_price: Optional[float]) -> dict:
        payload: dict[str, Any] = {
            "buySell": BUY,
            "productId": product_id,
            "orderType": ORDER_TYPE_LIMITED if limit_price is not None else ORDER_TYPE_MARKET,
            "timeType": TIME_TYPE_DAY,
            "size": quantity,
        }
        if limit_price is not None:
            payload["price"] = limit_price
        return payload

    async def _check_order(self, payload: dict) -> dict:
        response = await self._request(
            "POST", self._trading_endpoint("v5/checkOrder"), params=self._account_params(), json=payload
        )
        if response.get("errors"):
            raise BrokerError(f"Order check rejected: {response['errors']}")
        return response.get("data", {})

    async def get_order_info(self, product_id: str) -> OrderInfo:
        """Check (without placing) a one unit limit order to learn the transaction fee."""
        # Size and price do not affect the fixed fee
        data = await self._check_order(self._order_payload(product_id, 1, 0.01))
        fee = data.get("transactionFee")
        if fee is None and "transactionFees" in data:
            fee = sum(abs(f.get("amount", 0.0)) for f in data["transactionFees"])
        messages = data.get("messages") or []
        return OrderInfo(
            transaction_fee=float(fee) if fee is not None else None,
            is_in_core_selection=CORE_SELECTION_NOTICE in messages,
        )

    # -------------------------------------------------------------------------
    # Trading
    # -------------------------------------------------------------------------

    async def place_order(
        self,
        product_id: str,
        quantity: int,
        limit_price: Optional[float] = None,
        dry_run: bool = True,
    ) -> str:
        """Place a buy order. Returns the confirmation (order id).

        Args:
            product_id: DEGIRO product id
            quantity: Number of units to buy
            limit_price: Limit price (optional). If provided, places a limit order.
            dry_run: Log the order without submitting it

        Raises:
            OrderPlacementError: If the broker rejects the order
        """
        if dry_run:
            price_info = f" @ {limit_price}" if limit_price is not None else ""
            logger.info(f"[DRY RUN] Would buy {quantity} of {product_id}{price_info}")
            return f"DRY-RUN-BUY-{product_id}-{quantity}"

        logger.info(f"Buying {quantity} of {product_id}")
        payload = self._order_payload(product_id, quantity, limit_price)
        try:
            checked = await self._check_order(payload)
            confirmation_id = checked.get("confirmationId")
            if not confirmation_id:
                raise BrokerError("Order check returned no confirmation id")
            response = await self._request(
                "POST",
                self._trading_endpoint(f"v5/order/{confirmation_id}"),
                params=self._account_params(),
                json=payload,
            )
        except BrokerError as e:
            raise OrderPlacementError(product_id, str(e)) from e

        if response.get("errors"):
            raise OrderPlacementError(product_id, str(response["errors"]))
        order_id = response.get("data", {}).get("orderId")
        return str(order_id) if order_id is not None else str(confirmation_id)
