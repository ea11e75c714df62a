"""
Escrow program support: address derivation, account schema,
pre-flight validation and the protocol client.
"""

from .pda import (
    EscrowTokenAccounts,
    derive_escrow_address,
    derive_token_address,
    derive_vault_address,
    derive_escrow_accounts,
)
from .program import (
    EscrowRecord,
    EscrowSummary,
    MakeAccounts,
    TakeAccounts,
    RefundAccounts,
)
from .validation import (
    TokenBalanceValidator,
    ValidationResult,
    validate_escrow_params,
    validate_public_key,
    validate_amount,
    validate_seed,
)
from .client import EscrowClient, EscrowContext, EscrowOperation

__all__ = [
    "EscrowTokenAccounts",
    "derive_escrow_address",
    "derive_token_address",
    "derive_vault_address",
    "derive_escrow_accounts",
    "EscrowRecord",
    "EscrowSummary",
    "MakeAccounts",
    "TakeAccounts",
    "RefundAccounts",
    "TokenBalanceValidator",
    "ValidationResult",
    "validate_escrow_params",
    "validate_public_key",
    "validate_amount",
    "validate_seed",
    "EscrowClient",
    "EscrowContext",
    "EscrowOperation",
]
