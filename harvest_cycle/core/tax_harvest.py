"""Tax harvest coordinator: withheld fees -> SOL -> holders and treasury.

One call of ``process_withheld_tax`` either defers (returns None and
leaves every counter untouched) or runs the whole pipeline:

    harvest to mint -> withdraw to operating wallet -> swap (batched if
    above the ceiling) -> 75% holders / 25% treasury -> ledger entry

Any swap failure propagates and aborts the cycle. Harvested tokens stay
in the operating wallet; they are not re-queued. A failed treasury
transfer is reported on the result but does not undo holder payouts.
"""

import logging
import time
from decimal import Decimal
from typing import Callable, List, Optional

from solders.keypair import Keypair

from ..config.settings import HOLDER_SHARE_PERCENT
from ..models.chain import SwapResult
from ..models.tax import TaxDistributionEntry, TaxDistributionResult
from .errors import HarvestError, is_missing_account_error
from .token_instructions import (
    create_ata_idempotent,
    derive_ata,
    harvest_withheld_to_mint,
    sol_transfer,
    withdraw_withheld_from_mint,
)

logger = logging.getLogger(__name__)

HARVEST_SOURCES_PER_TX = 20


def plan_batches(amount: int, count: int) -> List[int]:
    """Split ``amount`` into ``count`` equal parts, remainder on the last.

    The last batch may exceed the per-batch ceiling by up to
    ``count - 1`` base units; that is accepted.
    """
    if count <= 1 or amount <= 0:
        return [amount]
    base = amount // count
    if base == 0:
        return [amount]
    batches = [base] * count
    batches[-1] += amount - base * count
    return batches


def split_proceeds(amount: int):
    """(holder share, treasury share). The floored holder share leaves
    the remainder to the treasury, so the two always sum to ``amount``."""
    holders = amount * HOLDER_SHARE_PERCENT // 100
    return holders, amount - holders


class TaxHarvestCoordinator:
    """Runs the harvest -> swap -> distribute pipeline for one mint."""

    def __init__(
        self,
        rpc,
        sender,
        holder_inspector,
        price_resolver,
        swap_router,
        distribution,
        tax_ledger,
        config,
        reward_keypair: Keypair,
        admin_keypair: Keypair,
        treasury_address: str,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rpc = rpc
        self.sender = sender
        self.holder_inspector = holder_inspector
        self.price_resolver = price_resolver
        self.swap_router = swap_router
        self.distribution = distribution
        self.tax_ledger = tax_ledger
        self.config = config
        self.reward_keypair = reward_keypair
        self.admin_keypair = admin_keypair
        self.treasury_address = treasury_address
        self._sleep = sleep
        self._clock = clock

    # -- checks ------------------------------------------------------------

    def withdraw_authority(self) -> Optional[Keypair]:
        """Keypair holding the mint's withdraw-withheld authority, or None."""
        mint = self.holder_inspector.mint_info()
        if mint.transfer_fee is None:
            logger.error(
                "Mint %s has no TransferFeeConfig extension; nothing can be harvested",
                mint.address,
            )
            return None
        authority = mint.transfer_fee.withdraw_withheld_authority
        if authority is None:
            logger.error(
                "Mint %s has no withdraw-withheld authority. Set it to the reward or "
                "admin wallet with `spl-token set-withdraw-withheld-authority`",
                mint.address,
            )
            return None
        for keypair in (self.reward_keypair, self.admin_keypair):
            if str(keypair.pubkey()) == authority:
                return keypair
        logger.error(
            "Withdraw-withheld authority %s matches neither the reward wallet (%s) nor "
            "the admin wallet (%s). Update the authority or the wallet keys.",
            authority, self.reward_keypair.pubkey(), self.admin_keypair.pubkey(),
        )
        return None

    def meets_threshold(self, amount: int, decimals: int) -> bool:
        if self.config.is_usd_mode:
            value = self.price_resolver.token_value_usd(amount, decimals)
            if value is None:
                logger.warning("Token price unavailable; deferring harvest of %d", amount)
                return False
            if value < self.config.min_tax_threshold_usd:
                logger.info(
                    "Withheld value $%.4f below threshold $%s; deferring",
                    value, self.config.min_tax_threshold_usd,
                )
                return False
            return True
        threshold = self.config.min_tax_threshold_token * 10 ** decimals
        if amount < threshold:
            logger.info("Withheld %d below threshold %d; deferring", amount, threshold)
            return False
        return True

    def exceeds_ceiling(self, amount: int, decimals: int) -> bool:
        if self.config.is_usd_mode:
            value: Optional[Decimal] = self.price_resolver.token_value_usd(amount, decimals)
            if value is None:
                logger.warning("Token price unavailable; swapping %d in one batch", amount)
                return False
            return value > self.config.max_harvest_usd
        return amount > self.config.max_harvest_token * 10 ** decimals

    # -- steps -------------------------------------------------------------

    def _balance_before_withdraw(self, address: str) -> int:
        """Only a missing account reads as 0; any other failure propagates."""
        try:
            return self.rpc.get_token_account_balance(address)
        except HarvestError as exc:
            if not is_missing_account_error(exc):
                raise
            logger.debug("Token account %s does not exist yet: %s", address, exc)
            return 0

    def harvest_and_withdraw(self, sources: List[str], authority: Keypair) -> int:
        """Harvest ``sources`` into the mint, withdraw to the reward wallet.

        Returns the amount that actually landed in the reward wallet.

        Raises:
            HarvestError: A balance read failed. After the withdrawal has
                landed this is logged with its signature before re-raising.
        """
        mint = self.holder_inspector.mint_info()
        owner = self.reward_keypair.pubkey()
        destination = derive_ata(owner, mint.address, mint.program_id)
        before = self._balance_before_withdraw(str(destination))

        for start in range(0, len(sources), HARVEST_SOURCES_PER_TX):
            chunk = sources[start:start + HARVEST_SOURCES_PER_TX]
            signature = self.sender.send_and_confirm([harvest_withheld_to_mint(mint.address, chunk)])
            logger.info("Harvested withheld fees from %d accounts (%s)", len(chunk), signature)

        signature = self.sender.send_and_confirm(
            [
                create_ata_idempotent(owner, owner, mint.address, mint.program_id),
                withdraw_withheld_from_mint(mint.address, destination, authority.pubkey()),
            ],
            signers=[authority],
        )
        self.holder_inspector.invalidate()
        try:
            after = self.rpc.get_token_account_balance(str(destination))
        except HarvestError as exc:
            logger.error(
                "Withdrawal %s landed but the balance of %s could not be read (%s); "
                "the withdrawn tokens remain in the reward wallet",
                signature, destination, exc,
            )
            raise
        withdrawn = after - before
        logger.info("Withdrew %d withheld tokens to %s (%s)", withdrawn, destination, signature)
        return withdrawn

    def swap_batches(self, amount: int, decimals: int) -> List[SwapResult]:
        if self.exceeds_ceiling(amount, decimals):
            batches = plan_batches(amount, self.config.batch_count)
            logger.info("Harvest %d above ceiling; swapping in %d batches", amount, len(batches))
        else:
            batches = [amount]
        results: List[SwapResult] = []
        for index, batch in enumerate(batches):
            if index:
                self._sleep(self.config.batch_delay)
            results.append(self.swap_router.swap(batch))
            logger.info("Batch %d/%d swapped: %d -> %d lamports",
                        index + 1, len(batches), batch, results[-1].amount_out)
        return results

    def pay_treasury(self, lamports: int):
        """Returns (signature, error). Errors are reported, not raised."""
        if lamports <= 0:
            return None, None
        try:
            signature = self.sender.send_and_confirm(
                [sol_transfer(self.reward_keypair.pubkey(), self.treasury_address, lamports)]
            )
        except (HarvestError, ValueError) as exc:
            logger.error("Treasury transfer of %d lamports failed: %s", lamports, exc)
            return None, str(exc)
        logger.info("Sent %d lamports to treasury %s (%s)", lamports, self.treasury_address, signature)
        return signature, None

    # -- entry point -------------------------------------------------------

    def process_withheld_tax(
        self, epoch: Optional[str] = None, cycle_number: Optional[int] = None
    ) -> Optional[TaxDistributionResult]:
        """Harvest, swap and distribute withheld fees, or defer.

        Returns:
            The distribution result, or None when nothing was processed.

        Raises:
            LiquidityError, SlippageError, SwapError: A swap failed.
            LedgerWriteError: Tax state could not be persisted.
        """
        authority = self.withdraw_authority()
        if authority is None:
            return None

        decimals = self.holder_inspector.mint_info().decimals
        totals = self.holder_inspector.total_withheld()
        logger.info(
            "Withheld: %d in %d accounts + %d in mint = %d",
            totals.accounts_total, len(totals.source_accounts), totals.mint_total, totals.total,
        )
        if totals.total <= 0 or not self.meets_threshold(totals.total, decimals):
            return None

        withdrawn = self.harvest_and_withdraw(totals.source_accounts, authority)
        if withdrawn <= 0:
            logger.info("Nothing withdrawn this cycle")
            return None

        reward_amount, treasury_amount = split_proceeds(withdrawn)
        swaps = self.swap_batches(withdrawn, decimals)
        sol_received = sum(s.amount_out for s in swaps)
        sol_to_holders, sol_to_treasury = split_proceeds(sol_received)

        distribution = self.distribution.distribute(sol_to_holders)
        treasury_signature, treasury_error = self.pay_treasury(sol_to_treasury)

        result = TaxDistributionResult(
            harvested=withdrawn,
            reward_amount=reward_amount,
            treasury_amount=treasury_amount,
            sol_received=sol_received,
            sol_to_holders=sol_to_holders,
            sol_to_treasury=sol_to_treasury,
            sol_paid_to_holders=distribution.total_paid,
            distributed_count=distribution.paid_count,
            swap_signatures=[s.signature for s in swaps],
            treasury_signature=treasury_signature,
            treasury_error=treasury_error,
            swaps=swaps,
            distribution=distribution,
        )
        signatures = distribution.signatures
        self.tax_ledger.record_distribution(
            TaxDistributionEntry(
                timestamp=int(self._clock()),
                harvested=withdrawn,
                reward_amount=reward_amount,
                treasury_amount=treasury_amount,
                sol_to_holders=sol_to_holders,
                sol_to_treasury=sol_to_treasury,
                distributed_count=distribution.paid_count,
                swap_signature=result.swap_signature,
                distribution_signature=signatures[-1] if signatures else None,
                epoch=epoch,
                cycle_number=cycle_number,
            )
        )
        logger.info(
            "Cycle tax processed: harvested=%d sol=%d holders=%d (%d paid) treasury=%d%s",
            withdrawn, sol_received, sol_to_holders, distribution.paid_count, sol_to_treasury,
            f" [treasury error: {treasury_error}]" if treasury_error else "",
        )
        return result
