"""
escrow SDK - Atomic Token Swap Client

Client for a three-operation escrow program (Make, Take, Refund) on Solana,
plus the machinery that reliably submits transactions to the ledger.

Usage:
    from escrow_sdk import EscrowClient, EscrowContext, SolanaConfig

    ctx = EscrowContext.from_config(SolanaConfig.from_env(), wallet=keypair)
    client = EscrowClient(ctx)

    # Maker deposits 1000 of mint A, asks 500 of mint B
    sig = await client.make(seed=42, mint_a=mint_a, mint_b=mint_b,
                            deposit_amount=1000, receive_amount=500)

    # Anyone holding 500 of mint B can take it
    escrow, _ = derive_escrow_address(maker, 42, ctx.program_id)
    sig = await taker_client.take(escrow)
"""

from .core import (
    TransactionStatus,
    TransactionState,
    TransactionProgress,
    TokenAccount,
    DEFAULT_ESCROW_PROGRAM_ID,
)
from .errors import (
    EscrowSDKError,
    ValidationError,
    InsufficientBalanceError,
    AccountNotFoundError,
    EscrowNotFoundError,
    UnauthorizedError,
    SubmissionError,
    RpcError,
    TransactionExpiredError,
    TransactionTimeoutError,
    ExecutionFailedError,
    format_error,
    is_retryable,
)

from .chains.solana import SolanaClient, SolanaConfig

from .escrow.pda import derive_escrow_address, derive_token_address, derive_vault_address
from .escrow.program import EscrowRecord, EscrowSummary
from .escrow.client import EscrowClient, EscrowContext, EscrowOperation

from .tx.executor import TransactionExecutor, ExecutorConfig

__version__ = "0.1.0"
__all__ = [
    # Core types
    "TransactionStatus",
    "TransactionState",
    "TransactionProgress",
    "TokenAccount",
    "DEFAULT_ESCROW_PROGRAM_ID",
    # Errors
    "EscrowSDKError",
    "ValidationError",
    "InsufficientBalanceError",
    "AccountNotFoundError",
    "EscrowNotFoundError",
    "UnauthorizedError",
    "SubmissionError",
    "RpcError",
    "TransactionExpiredError",
    "TransactionTimeoutError",
    "ExecutionFailedError",
    "format_error",
    "is_retryable",
    # Clients
    "SolanaClient",
    "SolanaConfig",
    # Escrow
    "derive_escrow_address",
    "derive_token_address",
    "derive_vault_address",
    "EscrowRecord",
    "EscrowSummary",
    "EscrowClient",
    "EscrowContext",
    "EscrowOperation",
    # Transactions
    "TransactionExecutor",
    "ExecutorConfig",
]
