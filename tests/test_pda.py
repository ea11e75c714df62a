"""
Address derivation tests.

Derivations are pure: no RPC, same inputs give the same addresses, and
distinct (maker, seed) / (owner, mint) tuples never collide.
"""

import unittest

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from escrow_sdk.core import DEFAULT_ESCROW_PROGRAM_ID, ESCROW_SEED, U64_MAX
from escrow_sdk.errors import ValidationError
from escrow_sdk.escrow.pda import (
    encode_seed, derive_escrow_address, derive_token_address,
    derive_vault_address, derive_escrow_accounts,
)

PROGRAM_ID = Pubkey.from_string(DEFAULT_ESCROW_PROGRAM_ID)


class TestEscrowAddress(unittest.TestCase):

    def setUp(self):
        self.maker = Keypair().pubkey()

    def test_deterministic(self):
        """Same maker and seed give the same escrow address."""
        first = derive_escrow_address(self.maker, 42, PROGRAM_ID)
        second = derive_escrow_address(self.maker, 42, PROGRAM_ID)
        self.assertEqual(first, second)

    def test_accepts_base58_strings(self):
        """Base58 text and Pubkey inputs derive the same address."""
        from_keys = derive_escrow_address(self.maker, 7, PROGRAM_ID)
        from_text = derive_escrow_address(str(self.maker), 7, DEFAULT_ESCROW_PROGRAM_ID)
        self.assertEqual(from_keys, from_text)

    def test_different_seeds_differ(self):
        """Distinct seeds never collide for one maker."""
        addresses = {derive_escrow_address(self.maker, seed, PROGRAM_ID)[0] for seed in range(20)}
        self.assertEqual(len(addresses), 20)

    def test_different_makers_differ(self):
        """Distinct makers never collide for one seed."""
        other = Keypair().pubkey()
        self.assertNotEqual(
            derive_escrow_address(self.maker, 1, PROGRAM_ID)[0],
            derive_escrow_address(other, 1, PROGRAM_ID)[0],
        )

    def test_bump_reproduces_address(self):
        """The returned bump recreates the off-curve address."""
        escrow, bump = derive_escrow_address(self.maker, 42, PROGRAM_ID)
        seeds = [ESCROW_SEED, bytes(self.maker), (42).to_bytes(8, "little"), bytes([bump])]
        self.assertEqual(Pubkey.create_program_address(seeds, PROGRAM_ID), escrow)
        self.assertFalse(escrow.is_on_curve())

    def test_seed_is_little_endian_u64(self):
        """Seeds encode as 8 little-endian bytes."""
        self.assertEqual(encode_seed(1), b"\x01" + b"\x00" * 7)
        self.assertEqual(encode_seed(U64_MAX), b"\xff" * 8)

    def test_seed_out_of_range(self):
        """Seeds outside u64 are rejected."""
        for seed in (-1, U64_MAX + 1):
            with self.assertRaises(ValidationError):
                derive_escrow_address(self.maker, seed, PROGRAM_ID)

    def test_seed_must_be_integer(self):
        """Non-integer seeds are rejected."""
        for seed in (1.5, "42", True):
            with self.assertRaises(ValidationError):
                encode_seed(seed)

    def test_malformed_maker(self):
        """A malformed maker key is a validation error."""
        with self.assertRaises(ValidationError):
            derive_escrow_address("not-a-key", 1, PROGRAM_ID)


class TestTokenAddress(unittest.TestCase):

    def setUp(self):
        self.owner = Keypair().pubkey()
        self.mint_a = Keypair().pubkey()
        self.mint_b = Keypair().pubkey()

    def test_deterministic(self):
        """Same mint and owner give the same token address."""
        self.assertEqual(
            derive_token_address(self.mint_a, self.owner),
            derive_token_address(self.mint_a, self.owner),
        )

    def test_no_collision_across_mints(self):
        """One owner gets a distinct account per mint."""
        self.assertNotEqual(
            derive_token_address(self.mint_a, self.owner),
            derive_token_address(self.mint_b, self.owner),
        )

    def test_no_collision_across_owners(self):
        """One mint gets a distinct account per owner."""
        other = Keypair().pubkey()
        self.assertNotEqual(
            derive_token_address(self.mint_a, self.owner),
            derive_token_address(self.mint_a, other),
        )

    def test_owner_and_mint_not_interchangeable(self):
        """Swapping owner and mint changes the address."""
        self.assertNotEqual(
            derive_token_address(self.mint_a, self.owner),
            derive_token_address(self.owner, self.mint_a),
        )

    def test_off_curve_owner(self):
        """The vault is the escrow PDA's token account."""
        escrow, _ = derive_escrow_address(self.owner, 3, PROGRAM_ID)
        vault = derive_vault_address(escrow, self.mint_a)
        self.assertEqual(vault, derive_token_address(self.mint_a, escrow))


class TestEscrowAccounts(unittest.TestCase):

    def setUp(self):
        self.maker = Keypair().pubkey()
        self.taker = Keypair().pubkey()
        self.mint_a = Keypair().pubkey()
        self.mint_b = Keypair().pubkey()
        self.escrow, _ = derive_escrow_address(self.maker, 42, PROGRAM_ID)

    def test_without_taker(self):
        """Make/Refund derivation leaves taker accounts empty."""
        accounts = derive_escrow_accounts(self.escrow, self.maker, self.mint_a, self.mint_b)
        self.assertEqual(accounts.vault, derive_token_address(self.mint_a, self.escrow))
        self.assertEqual(accounts.maker_ata_a, derive_token_address(self.mint_a, self.maker))
        self.assertEqual(accounts.maker_ata_b, derive_token_address(self.mint_b, self.maker))
        self.assertIsNone(accounts.taker_ata_a)
        self.assertIsNone(accounts.taker_ata_b)

    def test_with_taker(self):
        """Take derivation adds two distinct taker accounts."""
        accounts = derive_escrow_accounts(
            self.escrow, self.maker, self.mint_a, self.mint_b, taker=self.taker
        )
        self.assertEqual(accounts.taker_ata_a, derive_token_address(self.mint_a, self.taker))
        self.assertEqual(accounts.taker_ata_b, derive_token_address(self.mint_b, self.taker))
        self.assertEqual(
            len({accounts.vault, accounts.maker_ata_a, accounts.maker_ata_b,
                 accounts.taker_ata_a, accounts.taker_ata_b}),
            5,
        )


if __name__ == "__main__":
    unittest.main()
