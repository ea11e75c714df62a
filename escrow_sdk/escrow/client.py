"""
Escrow protocol client.

Assembles Make / Take / Refund against the escrow program's account contract.
Every local check (parameters, balances, maker authorization, escrow
existence) runs before anything is submitted; submission and confirmation
are delegated to a TransactionExecutor.

Escrow lifecycle (enforced by the program, observed here):
    Open (after Make) -> Closed-Taken (after Take) | Closed-Refunded (after Refund)
A closed escrow no longer exists on-chain and surfaces as EscrowNotFoundError.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass, replace
from typing import Optional, List, Union

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ..chains.solana import SolanaClient, SolanaConfig
from ..core import TransactionState, to_pubkey
from ..errors import (
    ValidationError, EscrowNotFoundError, UnauthorizedError, SubmissionError,
)
from ..tx.executor import TransactionExecutor, ExecutorConfig
from .pda import derive_escrow_address, derive_escrow_accounts, derive_vault_address
from .program import (
    EscrowRecord, EscrowSummary,
    MakeAccounts, TakeAccounts, RefundAccounts,
    make_instruction, take_instruction, refund_instruction,
    ESCROW_ACCOUNT_DISCRIMINATOR, ESCROW_ACCOUNT_SIZE,
)
from .validation import TokenBalanceValidator, validate_escrow_params

log = logging.getLogger(__name__)


# Escrow operations wait longer than a plain transfer. Template only:
# each client gets its own copy.
ESCROW_EXECUTOR_CONFIG = ExecutorConfig(timeout_ms=90_000, max_retries=2)


@dataclass
class EscrowContext:
    """
    Connection, wallet and program for one active wallet/connection pair.

    Build once per wallet and pass it to every client; nothing is global.
    """
    rpc: SolanaClient
    program_id: Pubkey
    wallet: Optional[object] = None    # solders Keypair or compatible signer

    @classmethod
    def from_config(cls, config: SolanaConfig, wallet=None) -> "EscrowContext":
        return cls(
            rpc=SolanaClient(config),
            program_id=to_pubkey(config.program_id, "program_id"),
            wallet=wallet,
        )

    @property
    def owner(self) -> Pubkey:
        if self.wallet is None:
            raise ValidationError("Wallet not connected. Please connect your wallet.")
        return self.wallet.pubkey()


@dataclass
class EscrowOperation:
    """A fully checked, ready-to-submit escrow instruction."""
    name: str
    instruction: Instruction
    accounts: Union[MakeAccounts, TakeAccounts, RefundAccounts]
    escrow: Pubkey
    record: Optional[EscrowRecord] = None


class EscrowClient:
    """
    Client for the escrow program.

    Usage:
        ctx = EscrowContext.from_config(SolanaConfig.from_env(), wallet=keypair)
        client = EscrowClient(ctx)
        sig = await client.make(seed=42, mint_a=a, mint_b=b,
                                deposit_amount=1000, receive_amount=500)
    """

    def __init__(self, context: EscrowContext, executor: TransactionExecutor = None):
        self.ctx = context
        self.validator = TokenBalanceValidator(context.rpc)
        self.executor = executor or TransactionExecutor(context.rpc, replace(ESCROW_EXECUTOR_CONFIG))

    @property
    def state(self) -> TransactionState:
        return self.executor.state

    def cancel(self) -> None:
        self.executor.cancel()

    # =========================================================================
    # Queries
    # =========================================================================

    async def fetch_escrow(self, address) -> EscrowRecord:
        """
        Fetch and decode an escrow record.

        Raises:
            EscrowNotFoundError: account absent, closed, owned by another
                program, or not an escrow
        """
        address = to_pubkey(address, "escrow")
        account = await self.ctx.rpc.get_account(address)
        if account is None:
            raise EscrowNotFoundError(address)
        if account.owner != self.ctx.program_id:
            log.warning(f"Account {address} is owned by {account.owner}, not the escrow program")
            raise EscrowNotFoundError(address)
        try:
            return EscrowRecord.decode(account.data)
        except ValidationError as e:
            log.warning(f"Account {address} is not an escrow: {e}")
            raise EscrowNotFoundError(address) from e

    async def list_escrows(self) -> List[EscrowSummary]:
        """All open escrows of the program with their vault balances."""
        filters = [
            {"dataSize": ESCROW_ACCOUNT_SIZE},
            {"memcmp": {
                "offset": 0,
                "bytes": base64.b64encode(ESCROW_ACCOUNT_DISCRIMINATOR).decode(),
                "encoding": "base64",
            }},
        ]
        accounts = await self.ctx.rpc.get_program_accounts(self.ctx.program_id, filters)

        records = []
        for address, data in accounts:
            try:
                records.append((address, EscrowRecord.decode(data)))
            except ValidationError as e:
                log.warning(f"Skipping undecodable escrow {address}: {e}")

        return list(await asyncio.gather(
            *(self._summarize(address, record) for address, record in records)
        ))

    async def _summarize(self, address: Pubkey, record: EscrowRecord) -> EscrowSummary:
        vault = derive_vault_address(address, record.mint_a)
        balance = 0
        try:
            token_account = await self.ctx.rpc.get_token_account(vault)
            if token_account is not None:
                balance = token_account.amount
        except (SubmissionError, ValueError) as e:
            log.warning(f"Vault {vault} not readable: {e}")
        return EscrowSummary(address=address, record=record, vault=vault, vault_balance=balance)

    # =========================================================================
    # Build (local checks only, nothing submitted)
    # =========================================================================

    async def build_make(self, seed: int, mint_a, mint_b,
                         deposit_amount: int, receive_amount: int) -> EscrowOperation:
        """
        Check and assemble a Make.

        Raises:
            ValidationError: bad parameters
            InsufficientBalanceError / AccountNotFoundError: maker's mint_a account
        """
        maker = self.ctx.owner
        validate_escrow_params(seed, deposit_amount, receive_amount)
        mint_a = to_pubkey(mint_a, "mint_a")
        mint_b = to_pubkey(mint_b, "mint_b")
        deposit_amount = int(deposit_amount)
        receive_amount = int(receive_amount)

        escrow, _ = derive_escrow_address(maker, seed, self.ctx.program_id)
        tokens = derive_escrow_accounts(escrow, maker, mint_a, mint_b)

        await self.validator.validate_balance(tokens.maker_ata_a, deposit_amount, mint_a)

        accounts = MakeAccounts(
            maker=maker,
            escrow=escrow,
            mint_a=mint_a,
            mint_b=mint_b,
            maker_ata_a=tokens.maker_ata_a,
            vault=tokens.vault,
        )
        instruction = make_instruction(
            self.ctx.program_id, accounts, seed, receive_amount, deposit_amount
        )
        log.info(f"Make escrow {escrow}: seed={seed}, deposit={deposit_amount}, receive={receive_amount}")
        return EscrowOperation("make", instruction, accounts, escrow)

    async def build_take(self, escrow_address) -> EscrowOperation:
        """
        Check and assemble a Take.

        Raises:
            EscrowNotFoundError: escrow absent or closed
            InsufficientBalanceError / AccountNotFoundError: taker's mint_b account
        """
        taker = self.ctx.owner
        escrow = to_pubkey(escrow_address, "escrow")
        record = await self.fetch_escrow(escrow)

        tokens = derive_escrow_accounts(
            escrow, record.maker, record.mint_a, record.mint_b, taker=taker
        )
        await self.validator.validate_balance(tokens.taker_ata_b, record.receive, record.mint_b)

        accounts = TakeAccounts(
            taker=taker,
            maker=record.maker,
            escrow=escrow,
            mint_a=record.mint_a,
            mint_b=record.mint_b,
            vault=tokens.vault,
            taker_ata_a=tokens.taker_ata_a,
            taker_ata_b=tokens.taker_ata_b,
            maker_ata_b=tokens.maker_ata_b,
        )
        log.info(f"Take escrow {escrow}: taker={taker}, pays {record.receive}")
        return EscrowOperation("take", take_instruction(self.ctx.program_id, accounts),
                               accounts, escrow, record)

    async def build_refund(self, escrow_address) -> EscrowOperation:
        """
        Check and assemble a Refund.

        Raises:
            EscrowNotFoundError: escrow absent or closed
            UnauthorizedError: caller is not the escrow's maker
        """
        maker = self.ctx.owner
        escrow = to_pubkey(escrow_address, "escrow")
        record = await self.fetch_escrow(escrow)

        if record.maker != maker:
            raise UnauthorizedError("Only the escrow maker can refund")

        tokens = derive_escrow_accounts(escrow, maker, record.mint_a, record.mint_b)
        accounts = RefundAccounts(
            maker=maker,
            escrow=escrow,
            mint_a=record.mint_a,
            vault=tokens.vault,
            maker_ata_a=tokens.maker_ata_a,
        )
        log.info(f"Refund escrow {escrow}")
        return EscrowOperation("refund", refund_instruction(self.ctx.program_id, accounts),
                               accounts, escrow, record)

    # =========================================================================
    # Submit
    # =========================================================================

    async def submit(self, operation: EscrowOperation) -> Optional[str]:
        """Run operation through the executor. Returns signature, or None if cancelled."""
        payer = self.ctx.owner

        async def send() -> str:
            return await self.ctx.rpc.send_instructions(
                [operation.instruction], payer, [self.ctx.wallet]
            )

        return await self.executor.execute(send)

    async def make(self, seed: int, mint_a, mint_b,
                   deposit_amount: int, receive_amount: int) -> Optional[str]:
        operation = await self.build_make(seed, mint_a, mint_b, deposit_amount, receive_amount)
        return await self.submit(operation)

    async def take(self, escrow_address) -> Optional[str]:
        operation = await self.build_take(escrow_address)
        return await self.submit(operation)

    async def refund(self, escrow_address) -> Optional[str]:
        operation = await self.build_refund(escrow_address)
        return await self.submit(operation)
