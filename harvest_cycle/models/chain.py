"""On-chain and venue data models."""

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

PoolType = Literal["Standard", "CPMM", "CLMM"]


@dataclass(frozen=True)
class TokenAccount:
    """Parsed SPL / Token-2022 token account."""

    address: str
    mint: str
    owner: str  # owning wallet
    amount: int  # raw base units
    withheld: int = 0  # Token-2022 TransferFeeAmount extension, 0 if absent


@dataclass(frozen=True)
class Holder:
    """Holder balance aggregated per owning wallet. Recomputed every cycle."""

    owner: str
    balance: int  # raw base units, summed over the owner's accounts
    decimals: int


@dataclass(frozen=True)
class TransferFee:
    """One epoch-scoped transfer fee schedule."""

    epoch: int
    maximum_fee: int
    basis_points: int


@dataclass(frozen=True)
class TransferFeeConfig:
    """Token-2022 TransferFeeConfig mint extension."""

    config_authority: Optional[str]
    withdraw_withheld_authority: Optional[str]
    withheld_amount: int  # harvested to mint but not yet withdrawn
    older_fee: TransferFee
    newer_fee: TransferFee

    def fee_for_epoch(self, epoch: int) -> TransferFee:
        return self.newer_fee if epoch >= self.newer_fee.epoch else self.older_fee


@dataclass(frozen=True)
class MintInfo:
    """Parsed mint account."""

    address: str
    program_id: str
    supply: int
    decimals: int
    mint_authority: Optional[str] = None
    freeze_authority: Optional[str] = None
    transfer_fee: Optional[TransferFeeConfig] = None


@dataclass(frozen=True)
class MintDescriptor:
    """One side of a pool as described by the venue API."""

    address: str
    decimals: int
    program_id: str
    transfer_fee_bps: int = 0


@dataclass
class PoolInfo:
    """Swap venue descriptor. Transient, fetched fresh each swap."""

    pool_id: str
    program_id: str
    pool_type: PoolType
    mint_a: MintDescriptor
    mint_b: MintDescriptor
    vault_a: str
    vault_b: str
    reserve_a: int  # raw base units
    reserve_b: int
    extra: Dict[str, str] = field(default_factory=dict)  # venue-specific keys (e.g. config id)

    def side_of(self, mint: str) -> str:
        if mint == self.mint_a.address:
            return "A"
        if mint == self.mint_b.address:
            return "B"
        raise ValueError(f"Mint {mint} is not part of pool {self.pool_id}")


@dataclass(frozen=True)
class SwapQuote:
    """Constant-product quote for one swap direction."""

    input_mint: MintDescriptor
    output_mint: MintDescriptor
    input_vault: str
    output_vault: str
    amount_in: int  # nominal input before transfer fee
    amount_in_after_fee: int  # what the pool actually receives
    source_reserve: int
    destination_reserve: int
    estimated_out: int
    min_out: int


@dataclass(frozen=True)
class SwapResult:
    """Outcome of one swap."""

    amount_in: int
    amount_out: int  # observed if available, else the estimate
    signature: str
    estimated_out: int
    observed: bool = False


@dataclass
class PayoutRecord:
    """Per-wallet outcome of a distribution run."""

    wallet: str
    reward: int  # lamports computed for this wallet
    status: Literal["paid", "skipped", "error"]
    signature: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class DistributionResult:
    """Full accounting for one distribution run."""

    total_amount: int  # lamports offered for distribution
    paid_count: int = 0
    total_paid: int = 0
    skipped_count: int = 0
    error_count: int = 0
    results: List[PayoutRecord] = field(default_factory=list)

    @property
    def signatures(self) -> List[str]:
        return [r.signature for r in self.results if r.status == "paid" and r.signature]
