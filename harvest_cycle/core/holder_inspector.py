"""Holder enumeration and mint inspection.

Token accounts are enumerated with getProgramAccounts filtered on the
mint (offset 0). Zero-balance accounts are kept in ``token_accounts()``
because transfer fees can sit withheld in accounts with no free balance.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..config.settings import FETCH_COOLDOWN, HOLDER_CACHE_TTL, MINT_CACHE_TTL, TOKEN_PROGRAM_ID
from ..logging.rate_limited import CircuitBreaker
from ..models.chain import Holder, MintInfo, TokenAccount
from .errors import ConfigurationError
from .resilient_cache import ResilientCache
from .token_layouts import TOKEN_ACCOUNT_SIZE, LayoutError, parse_mint, parse_token_account

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WithheldTotals:
    """Withheld transfer fees awaiting harvest."""

    source_accounts: List[str] = field(default_factory=list)  # accounts with withheld > 0
    accounts_total: int = 0
    mint_total: int = 0  # already harvested to the mint, not yet withdrawn

    @property
    def total(self) -> int:
        return self.accounts_total + self.mint_total


class HolderInspector:
    """Cached reads of the mint and all of its token accounts."""

    def __init__(
        self,
        rpc,
        mint: str,
        clock: Callable[[], float] = time.monotonic,
        breaker: Optional[CircuitBreaker] = None,
        holder_ttl: float = HOLDER_CACHE_TTL,
        mint_ttl: float = MINT_CACHE_TTL,
        cooldown: float = FETCH_COOLDOWN,
    ) -> None:
        self.rpc = rpc
        self.mint = mint
        self._mint_cache = ResilientCache(
            self._load_mint, ttl=mint_ttl, cooldown=cooldown,
            clock=clock, breaker=breaker, name="mint_info",
        )
        self._accounts_cache = ResilientCache(
            self._load_accounts, ttl=holder_ttl, cooldown=cooldown,
            clock=clock, breaker=breaker, name="token_accounts",
        )

    # -- loaders -----------------------------------------------------------

    def _load_mint(self) -> MintInfo:
        account = self.rpc.get_account_info(self.mint)
        if account is None:
            raise ConfigurationError(f"Mint account {self.mint} not found; check TOKEN_MINT")
        address, data, owner = account
        return parse_mint(address, owner, data)

    def _load_accounts(self) -> List[TokenAccount]:
        program_id = self.mint_info().program_id
        filters = [{"memcmp": {"offset": 0, "bytes": self.mint}}]
        if program_id == TOKEN_PROGRAM_ID:
            filters.insert(0, {"dataSize": TOKEN_ACCOUNT_SIZE})

        accounts: List[TokenAccount] = []
        skipped = 0
        for address, data, _owner in self.rpc.get_program_accounts(program_id, filters):
            try:
                accounts.append(parse_token_account(address, data))
            except LayoutError as exc:
                skipped += 1
                logger.debug("Skipping unparseable token account %s: %s", address, exc)
        if skipped:
            logger.warning("Skipped %d unparseable token accounts for %s", skipped, self.mint)
        logger.info("Enumerated %d token accounts for mint %s", len(accounts), self.mint)
        return accounts

    # -- public ------------------------------------------------------------

    def mint_info(self) -> MintInfo:
        return self._mint_cache.fetch()

    def token_accounts(self) -> List[TokenAccount]:
        """All token accounts for the mint, including zero-balance ones."""
        return self._accounts_cache.fetch()

    def holders(self) -> List[Holder]:
        """Positive balances aggregated per owning wallet."""
        decimals = self.mint_info().decimals
        balances: Dict[str, int] = {}
        for account in self.token_accounts():
            if account.amount > 0:
                balances[account.owner] = balances.get(account.owner, 0) + account.amount
        return [Holder(owner=o, balance=b, decimals=decimals) for o, b in balances.items()]

    def total_withheld(self) -> WithheldTotals:
        mint = self.mint_info()
        mint_total = mint.transfer_fee.withheld_amount if mint.transfer_fee else 0
        sources = [a for a in self.token_accounts() if a.withheld > 0]
        return WithheldTotals(
            source_accounts=[a.address for a in sources],
            accounts_total=sum(a.withheld for a in sources),
            mint_total=mint_total,
        )

    def invalidate(self) -> None:
        """Force fresh reads after state-changing transactions."""
        self._mint_cache.invalidate()
        self._accounts_cache.invalidate()
