"""Data models for the harvest cycle."""
from .cycle import (
    CycleResult,
    EpochInfo,
    EpochRecord,
    EpochStatistics,
    TaxResultPayload,
    DISTRIBUTED,
    ROLLED_OVER,
    FAILED,
)
from .tax import TaxDistributionEntry, TaxDistributionResult, TaxState
from .chain import (
    DistributionResult,
    Holder,
    MintDescriptor,
    MintInfo,
    PayoutRecord,
    PoolInfo,
    SwapQuote,
    SwapResult,
    TokenAccount,
    TransferFee,
    TransferFeeConfig,
)

__all__ = [
    "CycleResult",
    "EpochInfo",
    "EpochRecord",
    "EpochStatistics",
    "TaxResultPayload",
    "DISTRIBUTED",
    "ROLLED_OVER",
    "FAILED",
    "TaxDistributionEntry",
    "TaxDistributionResult",
    "TaxState",
    "DistributionResult",
    "Holder",
    "MintDescriptor",
    "MintInfo",
    "PayoutRecord",
    "PoolInfo",
    "SwapQuote",
    "SwapResult",
    "TokenAccount",
    "TransferFee",
    "TransferFeeConfig",
]
