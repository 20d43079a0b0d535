"""Transaction assembly, simulation and submission."""

import base64
import logging
import time
from typing import Callable, List, Optional, Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from ..config.settings import (
    COMPUTE_UNIT_LIMIT,
    COMPUTE_UNIT_PRICE_MICRO_LAMPORTS,
    SEND_ATTEMPTS,
    SEND_RETRY_DELAY,
)
from ..core.errors import RateLimitError, RpcError
from .solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)

# JSON-RPC codes that mean the node or network hiccuped, not the program.
_TRANSIENT_CODES = {-32004, -32005, -32014, 429, 502, 503, 504}
_PREFLIGHT_FAILURE_CODE = -32002


def is_transient_send_error(exc: BaseException) -> bool:
    """True for network-level send failures worth retrying."""
    if isinstance(exc, RateLimitError):
        return True
    if not isinstance(exc, RpcError):
        return False
    if exc.code == _PREFLIGHT_FAILURE_CODE:
        return False
    if "blockhash not found" in str(exc).lower():
        return True
    return exc.code is None or exc.code in _TRANSIENT_CODES


class TransactionSender:
    """Signs and submits transactions for one fee payer."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        payer: Keypair,
        attempts: int = SEND_ATTEMPTS,
        retry_delay: float = SEND_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rpc = rpc
        self.payer = payer
        self.attempts = attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

    def build(
        self,
        instructions: Sequence[Instruction],
        signers: Optional[Sequence[Keypair]] = None,
        compute_budget: bool = False,
    ) -> str:
        """Build and sign a transaction; returns it base64-encoded."""
        ixs: List[Instruction] = []
        if compute_budget:
            ixs.append(set_compute_unit_limit(COMPUTE_UNIT_LIMIT))
            ixs.append(set_compute_unit_price(COMPUTE_UNIT_PRICE_MICRO_LAMPORTS))
        ixs.extend(instructions)

        blockhash = Hash.from_string(self.rpc.get_latest_blockhash())
        keypairs = _unique_signers([self.payer, *(signers or [])])
        msg = Message.new_with_blockhash(ixs, self.payer.pubkey(), blockhash)
        tx = Transaction.new_unsigned(msg)
        tx.sign(keypairs, blockhash)
        return base64.b64encode(bytes(tx)).decode()

    def simulate(
        self,
        instructions: Sequence[Instruction],
        signers: Optional[Sequence[Keypair]] = None,
        compute_budget: bool = False,
    ) -> dict:
        """Simulate; returns the RPC ``value`` (``err``, ``logs``, ...)."""
        return self.rpc.simulate_transaction(self.build(instructions, signers, compute_budget))

    def send_and_confirm(
        self,
        instructions: Sequence[Instruction],
        signers: Optional[Sequence[Keypair]] = None,
        compute_budget: bool = False,
    ) -> str:
        """Submit with a fresh blockhash per attempt, then wait for confirmation.

        Only network-level failures are retried. Program errors and
        confirmation failures propagate immediately.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.attempts + 1):
            try:
                tx_b64 = self.build(instructions, signers, compute_budget)
                signature = self.rpc.send_transaction(tx_b64)
            except RpcError as exc:
                if not is_transient_send_error(exc) or attempt == self.attempts:
                    raise
                last_exc = exc
                logger.warning(
                    "Send attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt, self.attempts, exc, self.retry_delay,
                )
                self._sleep(self.retry_delay)
                continue
            self.rpc.confirm_transaction(signature)
            return signature
        raise RpcError(f"Send failed after {self.attempts} attempts: {last_exc}")


def _unique_signers(keypairs: Sequence[Keypair]) -> List[Keypair]:
    seen = set()
    unique: List[Keypair] = []
    for kp in keypairs:
        key = str(kp.pubkey())
        if key not in seen:
            seen.add(key)
            unique.append(kp)
    return unique
