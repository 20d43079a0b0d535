"""Token program instruction builders and address derivation."""

from typing import List, Union

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from ..config.settings import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
)

KeyLike = Union[str, Pubkey]

# Token-2022 TransferFeeExtension instruction and its sub-instructions
TRANSFER_FEE_EXTENSION = 26
WITHDRAW_WITHHELD_FROM_MINT = 2
HARVEST_WITHHELD_TO_MINT = 4

CLOSE_ACCOUNT = 9
CREATE_ATA_IDEMPOTENT = 1


def to_pubkey(key: KeyLike) -> Pubkey:
    return key if isinstance(key, Pubkey) else Pubkey.from_string(key)


def derive_ata(owner: KeyLike, mint: KeyLike, token_program: KeyLike) -> Pubkey:
    """Associated token account for (owner, mint) under ``token_program``."""
    address, _ = Pubkey.find_program_address(
        [bytes(to_pubkey(owner)), bytes(to_pubkey(token_program)), bytes(to_pubkey(mint))],
        to_pubkey(ASSOCIATED_TOKEN_PROGRAM_ID),
    )
    return address


def create_ata_idempotent(
    payer: KeyLike, owner: KeyLike, mint: KeyLike, token_program: KeyLike
) -> Instruction:
    ata = derive_ata(owner, mint, token_program)
    return Instruction(
        to_pubkey(ASSOCIATED_TOKEN_PROGRAM_ID),
        bytes([CREATE_ATA_IDEMPOTENT]),
        [
            AccountMeta(to_pubkey(payer), is_signer=True, is_writable=True),
            AccountMeta(ata, is_signer=False, is_writable=True),
            AccountMeta(to_pubkey(owner), is_signer=False, is_writable=False),
            AccountMeta(to_pubkey(mint), is_signer=False, is_writable=False),
            AccountMeta(to_pubkey(SYSTEM_PROGRAM_ID), is_signer=False, is_writable=False),
            AccountMeta(to_pubkey(token_program), is_signer=False, is_writable=False),
        ],
    )


def harvest_withheld_to_mint(mint: KeyLike, sources: List[KeyLike]) -> Instruction:
    """Move withheld fees from ``sources`` into the mint. Permissionless."""
    accounts = [AccountMeta(to_pubkey(mint), is_signer=False, is_writable=True)]
    accounts.extend(AccountMeta(to_pubkey(s), is_signer=False, is_writable=True) for s in sources)
    return Instruction(
        to_pubkey(TOKEN_2022_PROGRAM_ID),
        bytes([TRANSFER_FEE_EXTENSION, HARVEST_WITHHELD_TO_MINT]),
        accounts,
    )


def withdraw_withheld_from_mint(
    mint: KeyLike, destination: KeyLike, authority: KeyLike
) -> Instruction:
    """Withdraw the mint's withheld balance; ``authority`` must sign."""
    return Instruction(
        to_pubkey(TOKEN_2022_PROGRAM_ID),
        bytes([TRANSFER_FEE_EXTENSION, WITHDRAW_WITHHELD_FROM_MINT]),
        [
            AccountMeta(to_pubkey(mint), is_signer=False, is_writable=True),
            AccountMeta(to_pubkey(destination), is_signer=False, is_writable=True),
            AccountMeta(to_pubkey(authority), is_signer=True, is_writable=False),
        ],
    )


def close_account(
    account: KeyLike, destination: KeyLike, owner: KeyLike, token_program: KeyLike
) -> Instruction:
    return Instruction(
        to_pubkey(token_program),
        bytes([CLOSE_ACCOUNT]),
        [
            AccountMeta(to_pubkey(account), is_signer=False, is_writable=True),
            AccountMeta(to_pubkey(destination), is_signer=False, is_writable=True),
            AccountMeta(to_pubkey(owner), is_signer=True, is_writable=False),
        ],
    )


def sol_transfer(source: KeyLike, destination: KeyLike, lamports: int) -> Instruction:
    return transfer(
        TransferParams(
            from_pubkey=to_pubkey(source),
            to_pubkey=to_pubkey(destination),
            lamports=lamports,
        )
    )
