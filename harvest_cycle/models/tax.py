"""Tax bookkeeping data models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .chain import DistributionResult, SwapResult


@dataclass
class TaxDistributionEntry:
    """One entry in the bounded distribution history."""

    timestamp: int
    harvested: int  # token base units
    reward_amount: int  # token units attributed to holders
    treasury_amount: int  # token units attributed to treasury
    sol_to_holders: int  # lamports
    sol_to_treasury: int  # lamports
    distributed_count: int
    swap_signature: Optional[str] = None
    distribution_signature: Optional[str] = None
    epoch: Optional[str] = None
    cycle_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "taxAmount": str(self.harvested),
            "rewardAmount": str(self.reward_amount),
            "treasuryAmount": str(self.treasury_amount),
            "solToHolders": str(self.sol_to_holders),
            "solToTreasury": str(self.sol_to_treasury),
            "distributedCount": self.distributed_count,
            "swapTx": self.swap_signature,
            "distributionTx": self.distribution_signature,
            "epoch": self.epoch,
            "cycleNumber": self.cycle_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaxDistributionEntry":
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            harvested=int(data.get("taxAmount", "0")),
            reward_amount=int(data.get("rewardAmount", "0")),
            treasury_amount=int(data.get("treasuryAmount", "0")),
            sol_to_holders=int(data.get("solToHolders", "0")),
            sol_to_treasury=int(data.get("solToTreasury", "0")),
            distributed_count=int(data.get("distributedCount", 0)),
            swap_signature=data.get("swapTx"),
            distribution_signature=data.get("distributionTx"),
            epoch=data.get("epoch"),
            cycle_number=data.get("cycleNumber"),
        )


@dataclass
class TaxState:
    """Process-wide durable tax counters."""

    total_tax_collected: int = 0
    total_reward_amount: int = 0
    total_treasury_amount: int = 0
    total_sol_distributed: int = 0
    total_sol_to_treasury: int = 0
    last_tax_distribution: Optional[int] = None
    last_swap_tx: Optional[str] = None
    last_distribution_tx: Optional[str] = None
    tax_distributions: List[TaxDistributionEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTaxCollected": str(self.total_tax_collected),
            "totalRewardAmount": str(self.total_reward_amount),
            "totalTreasuryAmount": str(self.total_treasury_amount),
            "totalSolDistributed": str(self.total_sol_distributed),
            "totalSolToTreasury": str(self.total_sol_to_treasury),
            "lastTaxDistribution": self.last_tax_distribution,
            "lastSwapTx": self.last_swap_tx,
            "lastDistributionTx": self.last_distribution_tx,
            "taxDistributions": [e.to_dict() for e in self.tax_distributions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaxState":
        return cls(
            total_tax_collected=int(data.get("totalTaxCollected", "0")),
            total_reward_amount=int(data.get("totalRewardAmount", "0")),
            total_treasury_amount=int(data.get("totalTreasuryAmount", "0")),
            total_sol_distributed=int(data.get("totalSolDistributed", "0")),
            total_sol_to_treasury=int(data.get("totalSolToTreasury", "0")),
            last_tax_distribution=data.get("lastTaxDistribution"),
            last_swap_tx=data.get("lastSwapTx"),
            last_distribution_tx=data.get("lastDistributionTx"),
            tax_distributions=[
                TaxDistributionEntry.from_dict(e) for e in data.get("taxDistributions", [])
            ],
        )


@dataclass
class TaxDistributionResult:
    """Outcome of one processWithheldTax run that reached distribution."""

    harvested: int  # token base units
    reward_amount: int
    treasury_amount: int
    sol_received: int  # lamports out of the swap(s)
    sol_to_holders: int  # lamports allocated to holders (75% share)
    sol_to_treasury: int  # lamports allocated to treasury (25% share)
    sol_paid_to_holders: int  # lamports actually transferred
    distributed_count: int
    swap_signatures: List[str] = field(default_factory=list)
    treasury_signature: Optional[str] = None
    treasury_error: Optional[str] = None
    swaps: List[SwapResult] = field(default_factory=list)
    distribution: Optional[DistributionResult] = None

    @property
    def swap_signature(self) -> Optional[str]:
        return ",".join(self.swap_signatures) if self.swap_signatures else None
