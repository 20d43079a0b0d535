"""Exception hierarchy for the harvest cycle.

Errors are raised where they are detected and handled at the cycle
boundary (CycleRunner), which turns them into a FAILED CycleResult.
Per-wallet payout problems are the exception: they are recorded in the
distribution result and never propagate.
"""

from typing import Optional


class HarvestError(Exception):
    """Base class for all harvest-cycle errors."""


class ConfigurationError(HarvestError):
    """Missing authority, credentials or required settings. Not retried."""


class PoolInfoError(ConfigurationError):
    """Venue API response is missing a required field or names an unknown pool type."""


class RpcError(HarvestError):
    """JSON-RPC or HTTP failure talking to a remote endpoint."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class RateLimitError(RpcError):
    """Remote endpoint signalled rate limiting (HTTP 429 or equivalent)."""


class LiquidityError(HarvestError):
    """Pool reserves too thin to quote the swap safely."""


class SlippageError(HarvestError):
    """Minimum acceptable output below the absolute floor."""


class SwapError(HarvestError):
    """Swap could not be simulated or submitted.

    ``kind`` is one of: unrecognized_instruction, transfer_fee,
    simulation, send.
    """

    def __init__(self, message: str, kind: str = "send", logs: Optional[list] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.logs = logs or []


class PayoutError(HarvestError):
    """A single holder transfer failed."""


class LedgerWriteError(HarvestError):
    """Durable state could not be read or written. Fatal to the cycle."""


_RATE_LIMIT_MARKERS = ("429", "too many requests", "rate limit", "rate-limit", "ratelimit")


def is_rate_limit_error(exc: BaseException) -> bool:
    """Classifier predicate used by the resilient caches."""
    if isinstance(exc, RateLimitError):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def is_missing_account_error(exc: BaseException) -> bool:
    """True when the RPC reported that the queried account does not exist."""
    return isinstance(exc, RpcError) and "could not find account" in str(exc).lower()


def classify_swap_failure(message: str) -> str:
    """Map a raw program error message to a SwapError kind.

    Custom error 101 (InstructionFallbackNotFound) means the program did
    not recognize the instruction tag, i.e. the wrong pool type or
    discriminator was used. Transfer-fee failures come from Token-2022
    accounting on the input mint.
    """
    if "InstructionFallbackNotFound" in message or "101" in message:
        return "unrecognized_instruction"
    if "TransferFee" in message or "transfer fee" in message.lower() or "fee" in message:
        return "transfer_fee"
    return "send"
