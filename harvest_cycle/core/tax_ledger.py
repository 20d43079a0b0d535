"""Durable tax counters and bounded distribution history."""

import logging
from typing import Any, Dict

from ..config.settings import TAX_HISTORY_CAP
from ..models.tax import TaxDistributionEntry, TaxState
from .state_store import JsonStateStore

logger = logging.getLogger(__name__)


class TaxLedger:
    """Owns the tax state document. Written only by the harvest coordinator."""

    def __init__(self, store: JsonStateStore, history_cap: int = TAX_HISTORY_CAP) -> None:
        self._store = store
        self.history_cap = history_cap

    def state(self) -> TaxState:
        return TaxState.from_dict(self._store.load(lambda: TaxState().to_dict()))

    def record_distribution(self, entry: TaxDistributionEntry) -> TaxState:
        """Fold one distribution into the counters and persist.

        Raises:
            LedgerWriteError: If the state document cannot be persisted.
        """
        state = self.state()
        state.total_tax_collected += entry.harvested
        state.total_reward_amount += entry.reward_amount
        state.total_treasury_amount += entry.treasury_amount
        state.total_sol_distributed += entry.sol_to_holders
        state.total_sol_to_treasury += entry.sol_to_treasury
        state.last_tax_distribution = entry.timestamp
        if entry.swap_signature:
            state.last_swap_tx = entry.swap_signature
        if entry.distribution_signature:
            state.last_distribution_tx = entry.distribution_signature

        state.tax_distributions.append(entry)
        if len(state.tax_distributions) > self.history_cap:
            state.tax_distributions = state.tax_distributions[-self.history_cap:]

        self._store.save(state.to_dict())
        logger.info(
            "Tax ledger updated: total harvested=%d, total SOL to holders=%d lamports",
            state.total_tax_collected,
            state.total_sol_distributed,
        )
        return state

    def statistics(self) -> Dict[str, Any]:
        """Read-only summary for external consumers."""
        state = self.state()
        data = state.to_dict()
        data["distributionCount"] = len(state.tax_distributions)
        return data
