"""Price and liquidity resolution.

Token price is derived from the pool's reserves on the venue API
(SOL per whole token). The SOL/USD reference comes from a secondary
price API, falling back to DEFAULT_SOL_PRICE_USD when unavailable.
All math is exact (Fraction / Decimal); results in base units are
floored.
"""

import logging
import time
from decimal import Decimal
from fractions import Fraction
from typing import Any, Callable, Dict, Optional

from ..config.settings import (
    DEFAULT_SOL_PRICE_USD,
    FETCH_COOLDOWN,
    LAMPORTS_PER_SOL,
    POOL_CACHE_TTL,
    PRICE_CACHE_TTL,
)
from ..logging.rate_limited import CircuitBreaker, RateLimitedLogger
from .errors import HarvestError, PoolInfoError
from .resilient_cache import ResilientCache

logger = logging.getLogger(__name__)
_throttled = RateLimitedLogger(logger)


def _to_fraction(value: Any) -> Fraction:
    return Fraction(Decimal(str(value)))


def pool_price_from_info(info: Dict[str, Any], token_mint: str) -> Fraction:
    """SOL per whole token from a ``/pools/info`` payload.

    Raises:
        PoolInfoError: If the token is not in the pool or reserves are unusable.
    """
    mint_a = (info.get("mintA") or {}).get("address")
    mint_b = (info.get("mintB") or {}).get("address")
    if token_mint not in (mint_a, mint_b):
        raise PoolInfoError(f"Token {token_mint} not found in pool {info.get('id')}")
    token_is_a = token_mint == mint_a

    amount_a, amount_b = info.get("mintAmountA"), info.get("mintAmountB")
    if amount_a is not None and amount_b is not None:
        token_reserve = _to_fraction(amount_a if token_is_a else amount_b)
        other_reserve = _to_fraction(amount_b if token_is_a else amount_a)
        if token_reserve <= 0 or other_reserve <= 0:
            raise PoolInfoError(f"Pool {info.get('id')} has an empty reserve")
        return other_reserve / token_reserve

    # ``price`` is mintB per mintA
    if info.get("price"):
        price = _to_fraction(info["price"])
        if price <= 0:
            raise PoolInfoError(f"Pool {info.get('id')} reports non-positive price")
        return price if token_is_a else 1 / price
    raise PoolInfoError(f"Pool {info.get('id')} has neither reserves nor price")


def _floor(value: Fraction) -> int:
    return value.numerator // value.denominator


class PriceResolver:
    """Token/SOL and SOL/USD prices behind resilient caches."""

    def __init__(
        self,
        raydium_api,
        price_client,
        pool_id: str,
        token_mint: str,
        clock: Callable[[], float] = time.monotonic,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.pool_id = pool_id
        self.token_mint = token_mint
        self._raydium = raydium_api
        self._prices = price_client
        self._pool_price = ResilientCache(
            lambda: pool_price_from_info(self._raydium.fetch_pool_info(pool_id), token_mint),
            ttl=POOL_CACHE_TTL, cooldown=FETCH_COOLDOWN,
            clock=clock, breaker=breaker, name="pool_price",
        )
        self._sol_usd = ResilientCache(
            self._prices.sol_price_usd,
            ttl=PRICE_CACHE_TTL, cooldown=FETCH_COOLDOWN,
            clock=clock, breaker=breaker, name="sol_usd",
        )

    def pool_price(self) -> Fraction:
        """SOL per whole token. Raises on failure."""
        return self._pool_price.fetch()

    def try_pool_price(self) -> Optional[Fraction]:
        try:
            return self.pool_price()
        except HarvestError as exc:
            _throttled.warning("pool_price", "Token price unavailable: %s", exc)
            return None

    def sol_price_usd(self) -> Decimal:
        try:
            return self._sol_usd.fetch()
        except HarvestError as exc:
            _throttled.warning(
                "sol_usd", "SOL/USD price unavailable (%s), using fallback $%s",
                exc, DEFAULT_SOL_PRICE_USD,
            )
            return DEFAULT_SOL_PRICE_USD

    def token_value_sol(self, amount: int, decimals: int) -> Optional[Fraction]:
        price = self.try_pool_price()
        if price is None:
            return None
        return Fraction(amount, 10 ** decimals) * price

    def token_value_usd(self, amount: int, decimals: int) -> Optional[Decimal]:
        """USD value of ``amount`` base units, or None if the token price is unknown."""
        value_sol = self.token_value_sol(amount, decimals)
        if value_sol is None:
            return None
        value = value_sol * _to_fraction(self.sol_price_usd())
        return Decimal(value.numerator) / Decimal(value.denominator)

    def usd_to_lamports(self, usd: Decimal) -> int:
        return _floor(_to_fraction(usd) / _to_fraction(self.sol_price_usd()) * LAMPORTS_PER_SOL)

    def min_payout_lamports(
        self, mode: str, min_payout_token: int, min_payout_usd: Decimal
    ) -> Optional[int]:
        """Minimum payout threshold converted to lamports.

        TOKEN mode: ``min_payout_token`` whole tokens valued at the pool price.
        USD mode: ``min_payout_usd`` converted at the SOL/USD reference.
        Returns None when the token price is unavailable in TOKEN mode.
        """
        if mode == "USD":
            return self.usd_to_lamports(min_payout_usd)
        price = self.try_pool_price()
        if price is None:
            return None
        return _floor(min_payout_token * price * LAMPORTS_PER_SOL)
