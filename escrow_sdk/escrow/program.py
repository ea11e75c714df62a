"""
Escrow program schema.

The on-chain program (Anchor, single-byte discriminators) is an external
contract. This module is the only place its byte layouts are known:

Instructions:
    make   = 0x00 | seed u64 | receive u64 | amount u64
    take   = 0x01
    refund = 0x02

Account Escrow (114 bytes):
    0x01 | seed u64 | maker | mint_a | mint_b | receive u64 | bump u8
"""

import struct
from dataclasses import dataclass
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ..core import (
    TOKEN_PROGRAM_ID, ASSOCIATED_TOKEN_PROGRAM_ID, SYSTEM_PROGRAM_ID,
    U64_MAX, U8_MAX,
)
from ..errors import ValidationError


MAKE_DISCRIMINATOR = bytes([0])
TAKE_DISCRIMINATOR = bytes([1])
REFUND_DISCRIMINATOR = bytes([2])

ESCROW_ACCOUNT_DISCRIMINATOR = bytes([1])

# discriminator + seed + maker + mint_a + mint_b + receive + bump
ESCROW_ACCOUNT_SIZE = 1 + 8 + 32 * 3 + 8 + 1

_ESCROW_LAYOUT = struct.Struct("<Q32s32s32sQB")


class EscrowRecord(BaseModel):
    """Escrow account as stored by the program. Read-only on this side."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    seed: int = Field(ge=0, le=U64_MAX)
    maker: Pubkey
    mint_a: Pubkey
    mint_b: Pubkey
    receive: int = Field(ge=0, le=U64_MAX)
    bump: int = Field(ge=0, le=U8_MAX)

    @classmethod
    def decode(cls, data: bytes) -> "EscrowRecord":
        """Decode raw account data. Raises ValidationError on foreign data."""
        if len(data) != ESCROW_ACCOUNT_SIZE:
            raise ValidationError(
                f"Escrow account must be {ESCROW_ACCOUNT_SIZE} bytes, got {len(data)}"
            )
        if data[:1] != ESCROW_ACCOUNT_DISCRIMINATOR:
            raise ValidationError(f"Not an escrow account (discriminator {data[:1].hex()})")

        seed, maker, mint_a, mint_b, receive, bump = _ESCROW_LAYOUT.unpack(data[1:])
        return cls(
            seed=seed,
            maker=Pubkey(maker),
            mint_a=Pubkey(mint_a),
            mint_b=Pubkey(mint_b),
            receive=receive,
            bump=bump,
        )

    def encode(self) -> bytes:
        return ESCROW_ACCOUNT_DISCRIMINATOR + _ESCROW_LAYOUT.pack(
            self.seed, bytes(self.maker), bytes(self.mint_a), bytes(self.mint_b),
            self.receive, self.bump,
        )


class EscrowSummary(BaseModel):
    """One row of the open-escrow listing."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    address: Pubkey
    record: EscrowRecord
    vault: Pubkey
    vault_balance: int = 0

    def to_dict(self) -> dict:
        return {
            "address": str(self.address),
            "seed": str(self.record.seed),
            "maker": str(self.record.maker),
            "mint_a": str(self.record.mint_a),
            "mint_b": str(self.record.mint_b),
            "receive": str(self.record.receive),
            "vault": str(self.vault),
            "vault_balance": str(self.vault_balance),
        }


# =============================================================================
# Account sets
# =============================================================================

def _program_metas() -> List[AccountMeta]:
    return [
        AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID, False, False),
        AccountMeta(TOKEN_PROGRAM_ID, False, False),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
    ]


@dataclass(frozen=True)
class MakeAccounts:
    maker: Pubkey
    escrow: Pubkey
    mint_a: Pubkey
    mint_b: Pubkey
    maker_ata_a: Pubkey
    vault: Pubkey

    def to_metas(self) -> List[AccountMeta]:
        return [
            AccountMeta(self.maker, True, True),
            AccountMeta(self.escrow, False, True),
            AccountMeta(self.mint_a, False, False),
            AccountMeta(self.mint_b, False, False),
            AccountMeta(self.maker_ata_a, False, True),
            AccountMeta(self.vault, False, True),
        ] + _program_metas()


@dataclass(frozen=True)
class TakeAccounts:
    taker: Pubkey
    maker: Pubkey
    escrow: Pubkey
    mint_a: Pubkey
    mint_b: Pubkey
    vault: Pubkey
    taker_ata_a: Pubkey
    taker_ata_b: Pubkey
    maker_ata_b: Pubkey

    def to_metas(self) -> List[AccountMeta]:
        return [
            AccountMeta(self.taker, True, True),
            AccountMeta(self.maker, False, True),
            AccountMeta(self.escrow, False, True),
            AccountMeta(self.mint_a, False, False),
            AccountMeta(self.mint_b, False, False),
            AccountMeta(self.vault, False, True),
            AccountMeta(self.taker_ata_a, False, True),
            AccountMeta(self.taker_ata_b, False, True),
            AccountMeta(self.maker_ata_b, False, True),
        ] + _program_metas()


@dataclass(frozen=True)
class RefundAccounts:
    maker: Pubkey
    escrow: Pubkey
    mint_a: Pubkey
    vault: Pubkey
    maker_ata_a: Pubkey

    def to_metas(self) -> List[AccountMeta]:
        return [
            AccountMeta(self.maker, True, True),
            AccountMeta(self.escrow, False, True),
            AccountMeta(self.mint_a, False, False),
            AccountMeta(self.vault, False, True),
            AccountMeta(self.maker_ata_a, False, True),
        ] + _program_metas()


# =============================================================================
# Instructions
# =============================================================================

def make_instruction(program_id: Pubkey, accounts: MakeAccounts, seed: int,
                     receive: int, amount: int) -> Instruction:
    data = MAKE_DISCRIMINATOR + struct.pack("<QQQ", seed, receive, amount)
    return Instruction(program_id, data, accounts.to_metas())


def take_instruction(program_id: Pubkey, accounts: TakeAccounts) -> Instruction:
    return Instruction(program_id, TAKE_DISCRIMINATOR, accounts.to_metas())


def refund_instruction(program_id: Pubkey, accounts: RefundAccounts) -> Instruction:
    return Instruction(program_id, REFUND_DISCRIMINATOR, accounts.to_metas())
