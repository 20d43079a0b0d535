"""Binary layouts for token, mint and pool accounts.

SPL token account (165 bytes, Token-2022 appends extensions):
    mint 0..32 | owner 32..64 | amount u64 @64 | ... | state u8 @108
    Token-2022: account_type u8 @165, TLV entries from @166

Mint (82 bytes, Token-2022 pads to 165 then appends extensions):
    mint_authority COption<Pubkey> @0 | supply u64 @36 | decimals u8 @44
    is_initialized u8 @45 | freeze_authority COption<Pubkey> @46

TLV entry: type u16 LE | length u16 LE | value.
"""

import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from solders.pubkey import Pubkey

from ..models.chain import MintInfo, TokenAccount, TransferFee, TransferFeeConfig

TOKEN_ACCOUNT_SIZE = 165
MINT_BASE_SIZE = 82
TLV_START = 166

EXT_UNINITIALIZED = 0
EXT_TRANSFER_FEE_CONFIG = 1
EXT_TRANSFER_FEE_AMOUNT = 2

_ZERO_KEY = bytes(32)


class LayoutError(ValueError):
    """Raised when account data is too short or malformed for its layout."""


def read_pubkey(data: bytes, offset: int) -> str:
    if len(data) < offset + 32:
        raise LayoutError(f"Pubkey at {offset} out of range (len={len(data)})")
    return str(Pubkey.from_bytes(data[offset:offset + 32]))


def read_u64(data: bytes, offset: int) -> int:
    if len(data) < offset + 8:
        raise LayoutError(f"u64 at {offset} out of range (len={len(data)})")
    return struct.unpack_from("<Q", data, offset)[0]


def _optional_pubkey(raw: bytes) -> Optional[str]:
    """OptionalNonZeroPubkey: all-zero means None."""
    return None if raw == _ZERO_KEY else str(Pubkey.from_bytes(raw))


def _coption_pubkey(data: bytes, offset: int) -> Optional[str]:
    tag = struct.unpack_from("<I", data, offset)[0]
    return read_pubkey(data, offset + 4) if tag == 1 else None


def iter_extensions(data: bytes, start: int = TLV_START) -> Iterator[Tuple[int, bytes]]:
    """Yield (extension_type, value) pairs from a Token-2022 TLV region."""
    pos = start
    while pos + 4 <= len(data):
        ext_type, length = struct.unpack_from("<HH", data, pos)
        if ext_type == EXT_UNINITIALIZED:
            return
        value = data[pos + 4:pos + 4 + length]
        if len(value) < length:
            raise LayoutError(f"Truncated extension {ext_type} at {pos}")
        yield ext_type, value
        pos += 4 + length


def parse_token_account(address: str, data: bytes) -> TokenAccount:
    if len(data) < TOKEN_ACCOUNT_SIZE:
        raise LayoutError(f"Token account {address} too short: {len(data)} bytes")
    withheld = 0
    if len(data) > TOKEN_ACCOUNT_SIZE:
        for ext_type, value in iter_extensions(data):
            if ext_type == EXT_TRANSFER_FEE_AMOUNT:
                withheld = read_u64(value, 0)
                break
    return TokenAccount(
        address=address,
        mint=read_pubkey(data, 0),
        owner=read_pubkey(data, 32),
        amount=read_u64(data, 64),
        withheld=withheld,
    )


def parse_transfer_fee_config(value: bytes) -> TransferFeeConfig:
    if len(value) < 108:
        raise LayoutError(f"TransferFeeConfig too short: {len(value)} bytes")
    older = struct.unpack_from("<QQH", value, 72)
    newer = struct.unpack_from("<QQH", value, 90)
    return TransferFeeConfig(
        config_authority=_optional_pubkey(value[0:32]),
        withdraw_withheld_authority=_optional_pubkey(value[32:64]),
        withheld_amount=read_u64(value, 64),
        older_fee=TransferFee(epoch=older[0], maximum_fee=older[1], basis_points=older[2]),
        newer_fee=TransferFee(epoch=newer[0], maximum_fee=newer[1], basis_points=newer[2]),
    )


def parse_mint(address: str, program_id: str, data: bytes) -> MintInfo:
    if len(data) < MINT_BASE_SIZE:
        raise LayoutError(f"Mint {address} too short: {len(data)} bytes")
    transfer_fee = None
    if len(data) > TOKEN_ACCOUNT_SIZE:
        for ext_type, value in iter_extensions(data):
            if ext_type == EXT_TRANSFER_FEE_CONFIG:
                transfer_fee = parse_transfer_fee_config(value)
                break
    return MintInfo(
        address=address,
        program_id=program_id,
        supply=read_u64(data, 36),
        decimals=data[44],
        mint_authority=_coption_pubkey(data, 0),
        freeze_authority=_coption_pubkey(data, 46),
        transfer_fee=transfer_fee,
    )


# -- Raydium AMM v4 ---------------------------------------------------------

AMM_V4_STATE_SIZE = 752


@dataclass(frozen=True)
class AmmV4Keys:
    """Account keys stored in a Raydium AMM v4 pool state."""

    base_vault: str
    quote_vault: str
    base_mint: str
    quote_mint: str
    lp_mint: str
    open_orders: str
    market_id: str
    market_program_id: str
    target_orders: str


def parse_amm_v4_state(data: bytes) -> AmmV4Keys:
    if len(data) < AMM_V4_STATE_SIZE:
        raise LayoutError(f"AMM v4 state too short: {len(data)} bytes")
    return AmmV4Keys(
        base_vault=read_pubkey(data, 336),
        quote_vault=read_pubkey(data, 368),
        base_mint=read_pubkey(data, 400),
        quote_mint=read_pubkey(data, 432),
        lp_mint=read_pubkey(data, 464),
        open_orders=read_pubkey(data, 496),
        market_id=read_pubkey(data, 528),
        market_program_id=read_pubkey(data, 560),
        target_orders=read_pubkey(data, 592),
    )


# -- OpenBook / Serum market v3 ---------------------------------------------

MARKET_V3_MIN_SIZE = 349


@dataclass(frozen=True)
class MarketKeys:
    """Order-book market accounts needed by an AMM v4 swap."""

    market_id: str
    vault_signer_nonce: int
    base_mint: str
    quote_mint: str
    base_vault: str
    quote_vault: str
    request_queue: str
    event_queue: str
    bids: str
    asks: str


def parse_market_v3(data: bytes) -> MarketKeys:
    # 5-byte "serum" head padding precedes the account flags.
    if len(data) < MARKET_V3_MIN_SIZE:
        raise LayoutError(f"Market state too short: {len(data)} bytes")
    return MarketKeys(
        market_id=read_pubkey(data, 13),
        vault_signer_nonce=read_u64(data, 45),
        base_mint=read_pubkey(data, 53),
        quote_mint=read_pubkey(data, 85),
        base_vault=read_pubkey(data, 117),
        quote_vault=read_pubkey(data, 165),
        request_queue=read_pubkey(data, 221),
        event_queue=read_pubkey(data, 253),
        bids=read_pubkey(data, 285),
        asks=read_pubkey(data, 317),
    )


# -- Raydium CPMM -----------------------------------------------------------

CPMM_POOL_MIN_SIZE = 328


@dataclass(frozen=True)
class CpmmPoolKeys:
    """Account keys stored in a Raydium CPMM PoolState (after 8-byte discriminator)."""

    amm_config: str
    token_0_vault: str
    token_1_vault: str
    lp_mint: str
    token_0_mint: str
    token_1_mint: str
    token_0_program: str
    token_1_program: str
    observation_key: str


def parse_cpmm_pool_state(data: bytes) -> CpmmPoolKeys:
    if len(data) < CPMM_POOL_MIN_SIZE:
        raise LayoutError(f"CPMM pool state too short: {len(data)} bytes")
    return CpmmPoolKeys(
        amm_config=read_pubkey(data, 8),
        token_0_vault=read_pubkey(data, 72),
        token_1_vault=read_pubkey(data, 104),
        lp_mint=read_pubkey(data, 136),
        token_0_mint=read_pubkey(data, 168),
        token_1_mint=read_pubkey(data, 200),
        token_0_program=read_pubkey(data, 232),
        token_1_program=read_pubkey(data, 264),
        observation_key=read_pubkey(data, 296),
    )


# -- Raydium CLMM -----------------------------------------------------------

CLMM_POOL_MIN_SIZE = 273


@dataclass(frozen=True)
class ClmmPoolKeys:
    """Fields of a Raydium CLMM PoolState needed to route a swap."""

    amm_config: str
    token_mint_0: str
    token_mint_1: str
    token_vault_0: str
    token_vault_1: str
    observation_key: str
    tick_spacing: int
    tick_current: int


def parse_clmm_pool_state(data: bytes) -> ClmmPoolKeys:
    # 8-byte discriminator, then bump u8, so keys start at 9.
    if len(data) < CLMM_POOL_MIN_SIZE:
        raise LayoutError(f"CLMM pool state too short: {len(data)} bytes")
    return ClmmPoolKeys(
        amm_config=read_pubkey(data, 9),
        token_mint_0=read_pubkey(data, 73),
        token_mint_1=read_pubkey(data, 105),
        token_vault_0=read_pubkey(data, 137),
        token_vault_1=read_pubkey(data, 169),
        observation_key=read_pubkey(data, 201),
        tick_spacing=struct.unpack_from("<H", data, 235)[0],
        tick_current=struct.unpack_from("<i", data, 269)[0],
    )
