"""Swap instruction builders, one per pool shape.

Each variant resolves the on-chain accounts it needs (``resolve``) and
encodes a single swap instruction (``build_swap_instruction``). The set
is closed: Standard (AMM v4 + order-book market), CPMM and CLMM.
"""

import hashlib
import struct
from dataclasses import dataclass
from typing import Dict, Optional, Type

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ..config.settings import MEMO_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from ..models.chain import MintDescriptor, PoolInfo
from .errors import PoolInfoError
from .token_instructions import to_pubkey
from .token_layouts import (
    AmmV4Keys,
    ClmmPoolKeys,
    CpmmPoolKeys,
    MarketKeys,
    parse_amm_v4_state,
    parse_clmm_pool_state,
    parse_cpmm_pool_state,
    parse_market_v3,
)

AMM_V4_SWAP_BASE_IN = 9
AMM_AUTHORITY_SEED = b"amm authority"
CPMM_AUTHORITY_SEED = b"vault_and_lp_mint_auth_seed"
CLMM_TICK_ARRAY_SEED = b"tick_array"
CLMM_TICK_ARRAY_SIZE = 60


def anchor_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("global:<name>")."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


@dataclass(frozen=True)
class SwapAccounts:
    """User-side accounts for one swap direction."""

    owner: Pubkey
    input_mint: MintDescriptor
    output_mint: MintDescriptor
    input_account: Pubkey  # owner's token account for the input mint
    output_account: Pubkey  # owner's token account for the output mint


def _meta(key, writable: bool = False, signer: bool = False) -> AccountMeta:
    return AccountMeta(to_pubkey(key), is_signer=signer, is_writable=writable)


class PoolVariant:
    """Base class; subclasses own account resolution and encoding."""

    pool_type = ""

    def __init__(self, pool: PoolInfo, rpc) -> None:
        self.pool = pool
        self.rpc = rpc
        self._resolved = False

    def _read(self, address: str, what: str) -> bytes:
        account = self.rpc.get_account_info(address)
        if account is None:
            raise PoolInfoError(f"{what} account {address} not found")
        return account[1]

    def resolve(self) -> None:
        if not self._resolved:
            self._resolve()
            self._resolved = True

    def _resolve(self) -> None:
        raise NotImplementedError

    def build_swap_instruction(
        self, accounts: SwapAccounts, amount_in: int, min_out: int
    ) -> Instruction:
        raise NotImplementedError


class StandardPool(PoolVariant):
    """Raydium AMM v4. Needs the order-book market's accounts as well."""

    pool_type = "Standard"

    def __init__(self, pool: PoolInfo, rpc) -> None:
        super().__init__(pool, rpc)
        self.keys: Optional[AmmV4Keys] = None
        self.market: Optional[MarketKeys] = None
        self.amm_authority: Optional[Pubkey] = None
        self.vault_signer: Optional[Pubkey] = None

    def _resolve(self) -> None:
        self.keys = parse_amm_v4_state(self._read(self.pool.pool_id, "AMM pool"))
        self.market = parse_market_v3(self._read(self.keys.market_id, "Market"))
        program = to_pubkey(self.pool.program_id)
        self.amm_authority, _ = Pubkey.find_program_address([AMM_AUTHORITY_SEED], program)
        market_program = to_pubkey(self.keys.market_program_id)
        self.vault_signer = Pubkey.create_program_address(
            [bytes(to_pubkey(self.keys.market_id)), struct.pack("<Q", self.market.vault_signer_nonce)],
            market_program,
        )

    def build_swap_instruction(
        self, accounts: SwapAccounts, amount_in: int, min_out: int
    ) -> Instruction:
        self.resolve()
        keys, market = self.keys, self.market
        data = struct.pack("<BQQ", AMM_V4_SWAP_BASE_IN, amount_in, min_out)
        metas = [
            _meta(TOKEN_PROGRAM_ID),
            _meta(self.pool.pool_id, writable=True),
            _meta(self.amm_authority),
            _meta(keys.open_orders, writable=True),
            _meta(keys.target_orders, writable=True),
            _meta(keys.base_vault, writable=True),
            _meta(keys.quote_vault, writable=True),
            _meta(keys.market_program_id),
            _meta(keys.market_id, writable=True),
            _meta(market.bids, writable=True),
            _meta(market.asks, writable=True),
            _meta(market.event_queue, writable=True),
            _meta(market.base_vault, writable=True),
            _meta(market.quote_vault, writable=True),
            _meta(self.vault_signer),
            _meta(accounts.input_account, writable=True),
            _meta(accounts.output_account, writable=True),
            _meta(accounts.owner, signer=True),
        ]
        return Instruction(to_pubkey(self.pool.program_id), data, metas)


class CpmmPool(PoolVariant):
    """Raydium CPMM (constant product, Token-2022 aware)."""

    pool_type = "CPMM"

    def __init__(self, pool: PoolInfo, rpc) -> None:
        super().__init__(pool, rpc)
        self.keys: Optional[CpmmPoolKeys] = None
        self.authority: Optional[Pubkey] = None

    def _resolve(self) -> None:
        self.keys = parse_cpmm_pool_state(self._read(self.pool.pool_id, "CPMM pool"))
        self.authority, _ = Pubkey.find_program_address(
            [CPMM_AUTHORITY_SEED], to_pubkey(self.pool.program_id)
        )

    def build_swap_instruction(
        self, accounts: SwapAccounts, amount_in: int, min_out: int
    ) -> Instruction:
        self.resolve()
        keys = self.keys
        if accounts.input_mint.address == keys.token_0_mint:
            in_vault, out_vault = keys.token_0_vault, keys.token_1_vault
            in_program, out_program = keys.token_0_program, keys.token_1_program
        elif accounts.input_mint.address == keys.token_1_mint:
            in_vault, out_vault = keys.token_1_vault, keys.token_0_vault
            in_program, out_program = keys.token_1_program, keys.token_0_program
        else:
            raise PoolInfoError(
                f"Input mint {accounts.input_mint.address} not in CPMM pool {self.pool.pool_id}"
            )
        data = anchor_discriminator("swap_base_input") + struct.pack("<QQ", amount_in, min_out)
        metas = [
            _meta(accounts.owner, writable=True, signer=True),
            _meta(self.authority),
            _meta(keys.amm_config),
            _meta(self.pool.pool_id, writable=True),
            _meta(accounts.input_account, writable=True),
            _meta(accounts.output_account, writable=True),
            _meta(in_vault, writable=True),
            _meta(out_vault, writable=True),
            _meta(in_program),
            _meta(out_program),
            _meta(accounts.input_mint.address),
            _meta(accounts.output_mint.address),
            _meta(keys.observation_key, writable=True),
        ]
        return Instruction(to_pubkey(self.pool.program_id), data, metas)


class ClmmPool(PoolVariant):
    """Raydium CLMM (concentrated liquidity).

    Only the tick array holding the current tick is passed, so swaps
    large enough to cross into the next tick array fail in simulation.
    """

    pool_type = "CLMM"

    def __init__(self, pool: PoolInfo, rpc) -> None:
        super().__init__(pool, rpc)
        self.keys: Optional[ClmmPoolKeys] = None

    def _resolve(self) -> None:
        self.keys = parse_clmm_pool_state(self._read(self.pool.pool_id, "CLMM pool"))

    def tick_array_address(self, start_index: int) -> Pubkey:
        address, _ = Pubkey.find_program_address(
            [CLMM_TICK_ARRAY_SEED, bytes(to_pubkey(self.pool.pool_id)), struct.pack(">i", start_index)],
            to_pubkey(self.pool.program_id),
        )
        return address

    def current_tick_array_start(self) -> int:
        ticks_per_array = self.keys.tick_spacing * CLMM_TICK_ARRAY_SIZE
        return (self.keys.tick_current // ticks_per_array) * ticks_per_array

    def build_swap_instruction(
        self, accounts: SwapAccounts, amount_in: int, min_out: int
    ) -> Instruction:
        self.resolve()
        keys = self.keys
        if accounts.input_mint.address == keys.token_mint_0:
            in_vault, out_vault = keys.token_vault_0, keys.token_vault_1
        elif accounts.input_mint.address == keys.token_mint_1:
            in_vault, out_vault = keys.token_vault_1, keys.token_vault_0
        else:
            raise PoolInfoError(
                f"Input mint {accounts.input_mint.address} not in CLMM pool {self.pool.pool_id}"
            )
        # swap_v2 takes both token programs, so either side may be Token-2022.
        # amount, other_amount_threshold, sqrt_price_limit_x64 (0 = none), is_base_input
        data = (
            anchor_discriminator("swap_v2")
            + struct.pack("<QQ", amount_in, min_out)
            + (0).to_bytes(16, "little")
            + bytes([1])
        )
        metas = [
            _meta(accounts.owner, signer=True),
            _meta(keys.amm_config),
            _meta(self.pool.pool_id, writable=True),
            _meta(accounts.input_account, writable=True),
            _meta(accounts.output_account, writable=True),
            _meta(in_vault, writable=True),
            _meta(out_vault, writable=True),
            _meta(keys.observation_key, writable=True),
            _meta(TOKEN_PROGRAM_ID),
            _meta(TOKEN_2022_PROGRAM_ID),
            _meta(MEMO_PROGRAM_ID),
            _meta(accounts.input_mint.address),
            _meta(accounts.output_mint.address),
            _meta(self.tick_array_address(self.current_tick_array_start()), writable=True),
        ]
        return Instruction(to_pubkey(self.pool.program_id), data, metas)


POOL_VARIANTS: Dict[str, Type[PoolVariant]] = {
    StandardPool.pool_type: StandardPool,
    CpmmPool.pool_type: CpmmPool,
    ClmmPool.pool_type: ClmmPool,
}


def variant_for(pool: PoolInfo, rpc) -> PoolVariant:
    variant_cls = POOL_VARIANTS.get(pool.pool_type)
    if variant_cls is None:
        raise PoolInfoError(f"Unsupported pool type {pool.pool_type!r}")
    return variant_cls(pool, rpc)