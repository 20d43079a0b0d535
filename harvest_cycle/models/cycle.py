"""Epoch and cycle data models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

CycleState = Literal["DISTRIBUTED", "ROLLED_OVER", "FAILED"]

DISTRIBUTED: CycleState = "DISTRIBUTED"
ROLLED_OVER: CycleState = "ROLLED_OVER"
FAILED: CycleState = "FAILED"


@dataclass(frozen=True)
class TaxResultPayload:
    """Amounts moved by one successful pipeline run (integer base units)."""

    harvested: int  # token base units withdrawn from the mint
    sol_to_holders: int  # lamports
    sol_to_treasury: int  # lamports
    distributed_count: int
    swap_signature: Optional[str] = None  # comma-joined when batched

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "nukeHarvested": str(self.harvested),
            "solToHolders": str(self.sol_to_holders),
            "solToTreasury": str(self.sol_to_treasury),
            "distributedCount": self.distributed_count,
        }
        if self.swap_signature:
            data["swapSignature"] = self.swap_signature
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaxResultPayload":
        return cls(
            harvested=int(data.get("nukeHarvested", "0")),
            sol_to_holders=int(data.get("solToHolders", "0")),
            sol_to_treasury=int(data.get("solToTreasury", "0")),
            distributed_count=int(data.get("distributedCount", 0)),
            swap_signature=data.get("swapSignature"),
        )


@dataclass(frozen=True)
class CycleResult:
    """Immutable record of one executed cycle."""

    epoch: str  # UTC date, YYYY-MM-DD
    cycle_number: int  # 1..CYCLES_PER_EPOCH
    state: CycleState
    timestamp: int  # Unix epoch seconds
    error: Optional[str] = None
    tax_result: Optional[TaxResultPayload] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "epoch": self.epoch,
            "cycleNumber": self.cycle_number,
            "state": self.state,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.tax_result is not None:
            data["taxResult"] = self.tax_result.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CycleResult":
        tax = data.get("taxResult")
        return cls(
            epoch=data["epoch"],
            cycle_number=int(data["cycleNumber"]),
            state=data["state"],
            timestamp=int(data["timestamp"]),
            error=data.get("error"),
            tax_result=TaxResultPayload.from_dict(tax) if tax else None,
        )


@dataclass
class EpochRecord:
    """One UTC day of cycle history."""

    epoch: str
    cycles: List[CycleResult] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "cycles": [c.to_dict() for c in self.cycles],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EpochRecord":
        return cls(
            epoch=data["epoch"],
            cycles=[CycleResult.from_dict(c) for c in data.get("cycles", [])],
            created_at=int(data.get("createdAt", 0)),
            updated_at=int(data.get("updatedAt", 0)),
        )


@dataclass(frozen=True)
class EpochInfo:
    """Current position on the cycle clock."""

    epoch: str
    cycle_number: int
    next_cycle_in: int  # seconds until the next cycle boundary
    cycles_per_epoch: int


@dataclass(frozen=True)
class EpochStatistics:
    """Outcome counts for one epoch."""

    epoch: str
    total_cycles: int
    distributed: int
    rolled_over: int
    failed: int
    cycles: List[CycleResult]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "totalCycles": self.total_cycles,
            "distributed": self.distributed,
            "rolledOver": self.rolled_over,
            "failed": self.failed,
            "cycles": [c.to_dict() for c in self.cycles],
        }
