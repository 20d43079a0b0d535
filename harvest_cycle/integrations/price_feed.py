"""Reference SOL/USD price from the Jupiter price API."""

from decimal import Decimal, InvalidOperation
from typing import Optional

import requests

from ..config.settings import HTTP_TIMEOUT, JUPITER_PRICE_URL, WSOL_MINT
from ..core.errors import RateLimitError, RpcError


class JupiterPriceClient:
    """Fetches the USD price of SOL."""

    def __init__(
        self,
        url: str = JUPITER_PRICE_URL,
        timeout: int = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def sol_price_usd(self) -> Decimal:
        """Current SOL price in USD.

        Raises:
            RateLimitError: On HTTP 429.
            RpcError: On any other failure or a non-positive price.
        """
        try:
            resp = self._session.get(self.url, params={"ids": WSOL_MINT}, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise RpcError(f"Jupiter price API: {exc}") from exc
        if resp.status_code == 429:
            raise RateLimitError("Jupiter price API: HTTP 429", code=429)
        try:
            resp.raise_for_status()
            entry = resp.json()["data"][WSOL_MINT]
            price = Decimal(str(entry["price"]))
        except (requests.exceptions.HTTPError, ValueError, KeyError, TypeError, InvalidOperation) as exc:
            raise RpcError(f"Jupiter price API: unexpected response ({exc})") from exc
        if price <= 0:
            raise RpcError(f"Jupiter price API: non-positive price {price}")
        return price
