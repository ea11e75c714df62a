"""
Deterministic address derivation for the escrow program.

All functions are pure: no RPC, same inputs always give the same addresses.

Escrow record:  PDA([b"escrow", maker, seed_le_u64], program_id)
Token account:  PDA([owner, TOKEN_PROGRAM_ID, mint], ASSOCIATED_TOKEN_PROGRAM_ID)
Vault:          token account of (mint_a, escrow)
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from solders.pubkey import Pubkey

from ..core import (
    ESCROW_SEED, TOKEN_PROGRAM_ID, ASSOCIATED_TOKEN_PROGRAM_ID, U64_MAX,
    to_pubkey,
)
from ..errors import ValidationError


@dataclass(frozen=True)
class EscrowTokenAccounts:
    """Token accounts touched by escrow instructions."""
    vault: Pubkey
    maker_ata_a: Pubkey
    maker_ata_b: Pubkey
    taker_ata_a: Optional[Pubkey] = None
    taker_ata_b: Optional[Pubkey] = None


def encode_seed(seed: int) -> bytes:
    """Encode seed as u64 little-endian."""
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ValidationError(f"Seed must be an integer, got {seed!r}", field="seed")
    if seed < 0 or seed > U64_MAX:
        raise ValidationError(f"Seed out of u64 range: {seed}", field="seed")
    return seed.to_bytes(8, "little")


def derive_escrow_address(maker, seed: int, program_id) -> Tuple[Pubkey, int]:
    """
    Derive the escrow record address for (maker, seed).

    Returns:
        (escrow_pda, bump) where bump is the highest valid bump seed
    """
    maker = to_pubkey(maker, "maker")
    program_id = to_pubkey(program_id, "program_id")
    seeds = [ESCROW_SEED, bytes(maker), encode_seed(seed)]
    return Pubkey.find_program_address(seeds, program_id)


def derive_token_address(mint, owner) -> Pubkey:
    """Associated token address of owner for mint. Owner may be off-curve (PDA)."""
    mint = to_pubkey(mint, "mint")
    owner = to_pubkey(owner, "owner")
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def derive_vault_address(escrow, mint_a) -> Pubkey:
    """Vault holding the maker's deposit: escrow's token account for mint_a."""
    return derive_token_address(mint_a, escrow)


def derive_escrow_accounts(escrow, maker, mint_a, mint_b,
                           taker=None) -> EscrowTokenAccounts:
    """
    Derive every token account an escrow instruction may reference.

    Taker accounts are only derived when a taker is given (Take);
    Make and Refund pass no taker.
    """
    accounts = EscrowTokenAccounts(
        vault=derive_vault_address(escrow, mint_a),
        maker_ata_a=derive_token_address(mint_a, maker),
        maker_ata_b=derive_token_address(mint_b, maker),
    )
    if taker is None:
        return accounts

    return EscrowTokenAccounts(
        vault=accounts.vault,
        maker_ata_a=accounts.maker_ata_a,
        maker_ata_b=accounts.maker_ata_b,
        taker_ata_a=derive_token_address(mint_a, taker),
        taker_ata_b=derive_token_address(mint_b, taker),
    )
