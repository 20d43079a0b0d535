"""Proportional SOL distribution to eligible holders.

reward(holder) = floor(total * balance / total_eligible_balance)

Rewards under the dust floor or the minimum payout threshold are
skipped and not carried into later cycles. Transfers are sequential:
each one re-reads the paying wallet's balance first, and a failed
transfer never aborts the remaining ones.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from solders.keypair import Keypair

from ..config.settings import (
    MIN_PAYOUT_TOKEN_DEFAULT,
    MIN_PAYOUT_USD_DEFAULT,
    MIN_SOL_PAYOUT_LAMPORTS,
    REWARD_VALUE_MODE_DEFAULT,
    TRANSFER_FEE_BUFFER_LAMPORTS,
)
from ..models.chain import DistributionResult, PayoutRecord
from .errors import HarvestError, PayoutError, RpcError
from .token_instructions import sol_transfer

logger = logging.getLogger(__name__)


def proportional_rewards(total_amount: int, balances: Dict[str, int]) -> Dict[str, int]:
    """Floor-divided proportional split. The sum never exceeds ``total_amount``."""
    total_weight = sum(b for b in balances.values() if b > 0)
    if total_amount <= 0 or total_weight == 0:
        return {wallet: 0 for wallet in balances}
    return {
        wallet: (total_amount * balance // total_weight) if balance > 0 else 0
        for wallet, balance in balances.items()
    }


class DistributionEngine:
    """Pays the holder share of swap proceeds."""

    def __init__(
        self,
        rpc,
        sender,
        payer: Keypair,
        holder_inspector,
        eligibility,
        price_resolver=None,
        reward_value_mode: str = REWARD_VALUE_MODE_DEFAULT,
        min_payout_token: int = MIN_PAYOUT_TOKEN_DEFAULT,
        min_payout_usd: Decimal = MIN_PAYOUT_USD_DEFAULT,
        dust_floor: int = MIN_SOL_PAYOUT_LAMPORTS,
        fee_buffer: int = TRANSFER_FEE_BUFFER_LAMPORTS,
    ) -> None:
        self.rpc = rpc
        self.sender = sender
        self.payer = payer
        self.holder_inspector = holder_inspector
        self.eligibility = eligibility
        self.price_resolver = price_resolver
        self.reward_value_mode = reward_value_mode
        self.min_payout_token = min_payout_token
        self.min_payout_usd = min_payout_usd
        self.dust_floor = dust_floor
        self.fee_buffer = fee_buffer

    def payout_threshold(self) -> int:
        """Minimum payout in lamports; falls back to the dust floor if unpriced."""
        threshold: Optional[int] = None
        if self.price_resolver is not None:
            threshold = self.price_resolver.min_payout_lamports(
                self.reward_value_mode, self.min_payout_token, self.min_payout_usd
            )
        if threshold is None:
            logger.warning(
                "Minimum payout threshold unavailable, using dust floor %d lamports",
                self.dust_floor,
            )
            return self.dust_floor
        return threshold

    def eligible_balances(self) -> Dict[str, int]:
        eligible = self.eligibility.eligible_wallets()
        return {
            h.owner: h.balance
            for h in self.holder_inspector.holders()
            if h.owner in eligible and h.balance > 0
        }

    def distribute(self, total_amount: int) -> DistributionResult:
        """Split ``total_amount`` lamports across eligible holders and pay them."""
        result = DistributionResult(total_amount=total_amount)
        balances = self.eligible_balances()
        if total_amount <= 0 or not balances:
            logger.info("Nothing to distribute (amount=%d, eligible=%d)", total_amount, len(balances))
            return result

        rewards = proportional_rewards(total_amount, balances)
        threshold = self.payout_threshold()
        payer = str(self.payer.pubkey())
        logger.info(
            "Distributing %d lamports across %d holders (threshold=%d, dust=%d)",
            total_amount, len(rewards), threshold, self.dust_floor,
        )

        ordered: List[str] = sorted(rewards, key=lambda w: (-rewards[w], w))
        for wallet in ordered:
            reward = rewards[wallet]
            if reward < self.dust_floor:
                self._skip(result, wallet, reward, "below dust floor")
                continue
            if reward < threshold:
                self._skip(result, wallet, reward, "below minimum payout threshold")
                continue
            try:
                available = self.rpc.get_balance(payer)
                needed = reward + self.fee_buffer
                if available < needed:
                    self._skip(
                        result, wallet, reward,
                        f"insufficient balance: have {available}, need {needed}",
                    )
                    continue
                signature = self._pay(payer, wallet, reward)
            except HarvestError as exc:
                result.error_count += 1
                result.results.append(
                    PayoutRecord(wallet=wallet, reward=reward, status="error", reason=str(exc))
                )
                logger.error("Payout to %s failed: %s", wallet, exc)
                continue

            result.paid_count += 1
            result.total_paid += reward
            result.results.append(
                PayoutRecord(wallet=wallet, reward=reward, status="paid", signature=signature)
            )
            logger.info("Paid %d lamports to %s (%s)", reward, wallet, signature)

        logger.info(
            "Distribution complete: paid=%d (%d lamports) skipped=%d errors=%d",
            result.paid_count, result.total_paid, result.skipped_count, result.error_count,
        )
        return result

    def _pay(self, payer: str, wallet: str, reward: int) -> str:
        try:
            instruction = sol_transfer(payer, wallet, reward)
        except ValueError as exc:
            raise PayoutError(f"Invalid wallet address {wallet}: {exc}") from exc
        try:
            return self.sender.send_and_confirm([instruction])
        except RpcError as exc:
            raise PayoutError(f"Transfer rejected: {exc}") from exc

    @staticmethod
    def _skip(result: DistributionResult, wallet: str, reward: int, reason: str) -> None:
        result.skipped_count += 1
        result.results.append(PayoutRecord(wallet=wallet, reward=reward, status="skipped", reason=reason))
        logger.debug("Skipped %s (%d lamports): %s", wallet, reward, reason)
