"""Core logic for the harvest cycle."""
from .errors import (
    HarvestError,
    ConfigurationError,
    PoolInfoError,
    RpcError,
    RateLimitError,
    LiquidityError,
    SlippageError,
    SwapError,
    PayoutError,
    LedgerWriteError,
)
from .state_store import JsonStateStore
from .resilient_cache import ResilientCache
from .epoch_ledger import EpochLedger
from .tax_ledger import TaxLedger
from .holder_inspector import HolderInspector
from .price_resolver import PriceResolver
from .eligibility import HolderEligibility
from .swap_router import SwapRouter
from .distribution import DistributionEngine
from .tax_harvest import TaxHarvestCoordinator

__all__ = [
    "HarvestError",
    "ConfigurationError",
    "PoolInfoError",
    "RpcError",
    "RateLimitError",
    "LiquidityError",
    "SlippageError",
    "SwapError",
    "PayoutError",
    "LedgerWriteError",
    "JsonStateStore",
    "ResilientCache",
    "EpochLedger",
    "TaxLedger",
    "HolderInspector",
    "PriceResolver",
    "HolderEligibility",
    "SwapRouter",
    "DistributionEngine",
    "TaxHarvestCoordinator",
]
