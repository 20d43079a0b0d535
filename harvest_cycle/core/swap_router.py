"""Swap router: sells the harvested token for SOL through one Raydium pool.

Quote math (integers only):

    in_after_fee = amount_in * (10000 - transfer_fee_bps) // 10000
    estimated    = dst * in_after_fee * 9975 // ((src + in_after_fee) * 10000)
    min_out      = estimated * (10000 - slippage_bps) // 10000

A swap is rejected if either reserve is zero, if dst < 2 * min_out, or
if min_out is below MIN_SOL_OUTPUT_LAMPORTS.
"""

import logging
from typing import List, Optional

from solders.instruction import Instruction
from solders.keypair import Keypair

from ..config.settings import (
    BPS_DENOMINATOR,
    DEFAULT_SLIPPAGE_BPS,
    LIQUIDITY_RESERVE_MULTIPLE,
    MIN_SOL_OUTPUT_LAMPORTS,
    POOL_FEE_NUMERATOR,
    TOKEN_PROGRAM_ID,
    WSOL_MINT,
)
from ..integrations.raydium_api import pool_info_from_api
from ..models.chain import MintDescriptor, PoolInfo, SwapQuote, SwapResult
from .errors import HarvestError, LiquidityError, RpcError, SlippageError, SwapError, classify_swap_failure
from .pool_variants import SwapAccounts, variant_for
from .token_instructions import close_account, create_ata_idempotent, derive_ata
from .token_layouts import LayoutError, parse_token_account

logger = logging.getLogger(__name__)


def apply_transfer_fee(amount: int, fee_bps: int) -> int:
    """Amount the pool receives after the source mint's proportional transfer fee."""
    return amount * (BPS_DENOMINATOR - fee_bps) // BPS_DENOMINATOR


def estimate_output(amount_in_after_fee: int, source_reserve: int, destination_reserve: int) -> int:
    """Constant-product output with the venue's 0.25% trading fee."""
    denominator = (source_reserve + amount_in_after_fee) * BPS_DENOMINATOR
    if denominator == 0:
        return 0
    return destination_reserve * amount_in_after_fee * POOL_FEE_NUMERATOR // denominator


def minimum_output(estimated: int, slippage_bps: int) -> int:
    return estimated * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def check_liquidity(source_reserve: int, destination_reserve: int, min_out: int) -> None:
    """Raises LiquidityError when the pool is too thin for this quote."""
    if source_reserve <= 0 or destination_reserve <= 0:
        raise LiquidityError(
            f"Pool has an empty reserve (source={source_reserve}, destination={destination_reserve})"
        )
    if destination_reserve < LIQUIDITY_RESERVE_MULTIPLE * min_out:
        raise LiquidityError(
            f"Destination reserve {destination_reserve} < {LIQUIDITY_RESERVE_MULTIPLE} x "
            f"minimum output {min_out}"
        )


class SwapRouter:
    """Routes a token -> SOL swap through the configured pool."""

    def __init__(
        self,
        rpc,
        sender,
        raydium_api,
        owner: Keypair,
        token_mint: str,
        pool_id: str,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        min_output: int = MIN_SOL_OUTPUT_LAMPORTS,
        holder_inspector=None,
    ) -> None:
        self.rpc = rpc
        self.sender = sender
        self.raydium = raydium_api
        self.owner = owner
        self.token_mint = token_mint
        self.pool_id = pool_id
        self.slippage_bps = slippage_bps
        self.min_output = min_output
        # Supplies the on-chain transfer fee when the venue API omits it.
        self.holder_inspector = holder_inspector

    # -- pool ------------------------------------------------------------

    def resolve_pool(self) -> PoolInfo:
        """Fetch the pool descriptor; read reserves from the vaults if the API has none."""
        pool = pool_info_from_api(self.raydium.fetch_pool(self.pool_id))
        if pool.reserve_a < 0 or pool.reserve_b < 0:
            pool.reserve_a, pool.reserve_b = self._read_vault_reserves(pool)
            logger.info(
                "Pool %s reserves read from vaults: A=%d B=%d",
                pool.pool_id, pool.reserve_a, pool.reserve_b,
            )
        return pool

    def _read_vault_reserves(self, pool: PoolInfo):
        accounts = self.rpc.get_multiple_accounts([pool.vault_a, pool.vault_b])
        reserves: List[int] = []
        for vault, account in zip((pool.vault_a, pool.vault_b), accounts):
            if account is None:
                raise LiquidityError(f"Vault account {vault} not found")
            try:
                reserves.append(parse_token_account(vault, account[1]).amount)
            except LayoutError as exc:
                raise LiquidityError(f"Vault account {vault} unreadable: {exc}") from exc
        return reserves[0], reserves[1]

    def _source_fee_bps(self, mint: MintDescriptor) -> int:
        if mint.transfer_fee_bps or self.holder_inspector is None or mint.address != self.token_mint:
            return mint.transfer_fee_bps
        fee_config = self.holder_inspector.mint_info().transfer_fee
        if fee_config is None:
            return 0
        epoch = self.rpc.get_epoch()
        return fee_config.fee_for_epoch(epoch).basis_points

    # -- quote -----------------------------------------------------------

    def quote(self, pool: PoolInfo, amount_in: int) -> SwapQuote:
        """Price a token -> other-side swap and apply the safety checks.

        Raises:
            LiquidityError: Empty reserves or destination reserve < 2 x min_out.
            SlippageError: min_out below the absolute floor.
        """
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive, got {amount_in}")
        if pool.side_of(self.token_mint) == "A":
            src_mint, dst_mint = pool.mint_a, pool.mint_b
            src_vault, dst_vault = pool.vault_a, pool.vault_b
            src_reserve, dst_reserve = pool.reserve_a, pool.reserve_b
        else:
            src_mint, dst_mint = pool.mint_b, pool.mint_a
            src_vault, dst_vault = pool.vault_b, pool.vault_a
            src_reserve, dst_reserve = pool.reserve_b, pool.reserve_a

        in_after_fee = apply_transfer_fee(amount_in, self._source_fee_bps(src_mint))
        estimated = estimate_output(in_after_fee, src_reserve, dst_reserve)
        min_out = minimum_output(estimated, self.slippage_bps)

        check_liquidity(src_reserve, dst_reserve, min_out)
        if min_out < self.min_output:
            raise SlippageError(
                f"Minimum output {min_out} below floor {self.min_output} "
                f"(estimated {estimated} for {amount_in} in)"
            )
        return SwapQuote(
            input_mint=src_mint,
            output_mint=dst_mint,
            input_vault=src_vault,
            output_vault=dst_vault,
            amount_in=amount_in,
            amount_in_after_fee=in_after_fee,
            source_reserve=src_reserve,
            destination_reserve=dst_reserve,
            estimated_out=estimated,
            min_out=min_out,
        )

    # -- execute -----------------------------------------------------------

    def swap(self, amount_in: int) -> SwapResult:
        """Quote, build, simulate and submit one swap.

        Raises:
            LiquidityError, SlippageError: Quote rejected.
            SwapError: Simulation or submission failed (``kind`` classifies it).
        """
        pool = self.resolve_pool()
        quote = self.quote(pool, amount_in)
        variant = variant_for(pool, self.rpc)

        owner = self.owner.pubkey()
        in_program = quote.input_mint.program_id or TOKEN_PROGRAM_ID
        out_program = quote.output_mint.program_id or TOKEN_PROGRAM_ID
        accounts = SwapAccounts(
            owner=owner,
            input_mint=quote.input_mint,
            output_mint=quote.output_mint,
            input_account=derive_ata(owner, quote.input_mint.address, in_program),
            output_account=derive_ata(owner, quote.output_mint.address, out_program),
        )
        instructions: List[Instruction] = [
            create_ata_idempotent(owner, owner, quote.output_mint.address, out_program),
            variant.build_swap_instruction(accounts, quote.amount_in, quote.min_out),
        ]
        logger.info(
            "Swapping %d (pool receives %d) via %s pool %s: est=%d min_out=%d",
            quote.amount_in, quote.amount_in_after_fee, pool.pool_type,
            pool.pool_id, quote.estimated_out, quote.min_out,
        )

        sim = self.sender.simulate(instructions, compute_budget=True)
        if sim.get("err"):
            logs = sim.get("logs") or []
            detail = f"{sim['err']} {' | '.join(logs)}"
            kind = classify_swap_failure(detail)
            for line in logs[-10:]:
                logger.error("  sim: %s", line)
            raise SwapError(
                f"Swap simulation failed: {sim['err']}",
                kind="simulation" if kind == "send" else kind,
                logs=logs,
            )

        # Missing output account reads as zero; the swap transaction creates it.
        before = self._token_balance(str(accounts.output_account)) or 0
        try:
            signature = self.sender.send_and_confirm(instructions, compute_budget=True)
        except RpcError as exc:
            raise SwapError(f"Swap submission failed: {exc}", kind=classify_swap_failure(str(exc))) from exc

        after = self._token_balance(str(accounts.output_account))
        observed = after is not None and after > before
        amount_out = after - before if observed else quote.estimated_out
        logger.info("Swap confirmed %s: out=%d (%s)", signature, amount_out,
                    "observed" if observed else "estimated")

        if quote.output_mint.address == WSOL_MINT:
            self._unwrap(accounts.output_account, out_program)

        return SwapResult(
            amount_in=amount_in,
            amount_out=amount_out,
            signature=signature,
            estimated_out=quote.estimated_out,
            observed=observed,
        )

    def _token_balance(self, address: str) -> Optional[int]:
        try:
            return self.rpc.get_token_account_balance(address)
        except HarvestError as exc:
            logger.debug("Balance read for %s failed: %s", address, exc)
            return None

    def _unwrap(self, wsol_account, token_program: str) -> None:
        """Close the WSOL account so proceeds land as native SOL."""
        owner = self.owner.pubkey()
        try:
            self.sender.send_and_confirm([close_account(wsol_account, owner, owner, token_program)])
        except RpcError as exc:
            raise SwapError(f"WSOL unwrap failed: {exc}", kind="send") from exc
