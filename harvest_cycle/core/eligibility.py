"""Eligible-wallet provider for distributions."""

import logging
import time
from decimal import Decimal
from typing import Callable, Iterable, Optional, Set

from ..config.settings import ELIGIBILITY_REFRESH_SECONDS
from .errors import HarvestError, PoolInfoError
from .token_layouts import LayoutError, parse_token_account

logger = logging.getLogger(__name__)


def pool_vault_owners(rpc, swap_router) -> Set[str]:
    """Owners of the pool's token vaults (the pool authority).

    Raises:
        HarvestError: The pool or either vault could not be read.
    """
    pool = swap_router.resolve_pool()
    accounts = rpc.get_multiple_accounts([pool.vault_a, pool.vault_b])
    owners: Set[str] = set()
    for vault, account in zip((pool.vault_a, pool.vault_b), accounts):
        if account is None:
            raise PoolInfoError(f"Pool vault {vault} not found")
        try:
            owners.add(parse_token_account(vault, account[1]).owner)
        except LayoutError as exc:
            raise PoolInfoError(f"Pool vault {vault} unreadable: {exc}") from exc
    return owners


class HolderEligibility:
    """Holders minus blacklisted and system wallets, refreshed periodically.

    With ``min_holding_usd`` set, holders worth less than that are
    excluded. If the token price is unavailable the eligible set is
    empty for that refresh. The same holds for ``vault_owners``: until
    the pool's vault owners have been resolved once, nobody is eligible.
    """

    def __init__(
        self,
        holder_inspector,
        blacklist: Iterable[str] = (),
        excluded: Iterable[str] = (),
        price_resolver=None,
        min_holding_usd: Optional[Decimal] = None,
        refresh_seconds: float = ELIGIBILITY_REFRESH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        vault_owners: Optional[Callable[[], Set[str]]] = None,
    ) -> None:
        self.holder_inspector = holder_inspector
        self.blacklist = set(blacklist)
        self.excluded = set(excluded)
        self.price_resolver = price_resolver
        self.min_holding_usd = min_holding_usd
        self.refresh_seconds = refresh_seconds
        self._clock = clock
        self._vault_owners_loader = vault_owners
        self._vault_owners: Optional[Set[str]] = None
        self._eligible: Optional[Set[str]] = None
        self._refreshed_at: Optional[float] = None

    def is_blacklisted(self, wallet: str) -> bool:
        return (
            wallet in self.blacklist
            or wallet in self.excluded
            or (self._vault_owners is not None and wallet in self._vault_owners)
        )

    def eligible_wallets(self) -> Set[str]:
        now = self._clock()
        if self._eligible is None or now - self._refreshed_at >= self.refresh_seconds:
            eligible = self._compute()
            if eligible is None:
                return set()
            self._eligible = eligible
            self._refreshed_at = now
        return set(self._eligible)

    def refresh(self) -> Set[str]:
        self._eligible = None
        return self.eligible_wallets()

    def _resolve_vault_owners(self) -> bool:
        if self._vault_owners_loader is None or self._vault_owners is not None:
            return True
        try:
            self._vault_owners = set(self._vault_owners_loader())
        except HarvestError as exc:
            logger.error("Pool vault owners unavailable (%s); no holders eligible until resolved", exc)
            return False
        logger.info("Excluding pool vault owners: %s", ", ".join(sorted(self._vault_owners)))
        return True

    def _compute(self) -> Optional[Set[str]]:
        if not self._resolve_vault_owners():
            return None
        holders = self.holder_inspector.holders()
        eligible: Set[str] = set()
        blacklisted = below = 0
        for holder in holders:
            if self.is_blacklisted(holder.owner):
                blacklisted += 1
                continue
            if self.min_holding_usd is not None and self.price_resolver is not None:
                try:
                    value = self.price_resolver.token_value_usd(holder.balance, holder.decimals)
                except HarvestError as exc:
                    value = None
                    logger.debug("Holding value for %s unavailable: %s", holder.owner, exc)
                if value is None:
                    logger.error("Token price unavailable; no holders eligible until it recovers")
                    return None
                if value < self.min_holding_usd:
                    below += 1
                    continue
            eligible.add(holder.owner)
        logger.info(
            "Eligibility refreshed: total=%d eligible=%d blacklisted=%d below_min=%d",
            len(holders), len(eligible), blacklisted, below,
        )
        return eligible
