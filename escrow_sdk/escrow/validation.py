"""
Local pre-flight checks for escrow operations.

These mirror what the program enforces so certain-to-fail transactions are
never submitted. They do not replace the program's own checks.
"""

import math
import logging
from dataclasses import dataclass
from typing import Optional

from ..core import MAX_SAFE_INTEGER, TokenAccount, to_pubkey
from ..errors import (
    ValidationError, InsufficientBalanceError, AccountNotFoundError,
)

log = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


def _check_amount(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number", field=name)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite", field=name)
    if value <= 0:
        raise ValidationError(f"{name} must be greater than 0", field=name)
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{name} must be a whole number", field=name)
    if value > MAX_SAFE_INTEGER:
        raise ValidationError(f"{name} exceeds {MAX_SAFE_INTEGER}", field=name)


def validate_escrow_params(seed: int, deposit_amount, receive_amount) -> None:
    """
    Validate Make parameters before any network call.

    Raises:
        ValidationError: naming the offending field
    """
    if isinstance(seed, bool) or not isinstance(seed, int):
        raise ValidationError("Seed must be a non-negative integer", field="seed")
    if seed < 0 or seed > MAX_SAFE_INTEGER:
        raise ValidationError("Seed must be a valid positive number", field="seed")

    _check_amount(deposit_amount, "deposit_amount")
    _check_amount(receive_amount, "receive_amount")


# =============================================================================
# Text input validators
# =============================================================================

def validate_public_key(address: str) -> ValidationResult:
    if not address or not address.strip():
        return ValidationResult(False, "Address is required")
    try:
        to_pubkey(address)
    except ValidationError:
        return ValidationResult(False, "Invalid public key format")
    return ValidationResult(True)


def validate_amount(amount: str) -> ValidationResult:
    if not amount or not amount.strip():
        return ValidationResult(False, "Amount is required")
    try:
        value = float(amount)
    except ValueError:
        return ValidationResult(False, "Amount must be a positive number")
    if not math.isfinite(value) or value <= 0:
        return ValidationResult(False, "Amount must be a positive number")
    if not value.is_integer():
        return ValidationResult(False, "Amount must be a whole number")
    return ValidationResult(True)


def validate_seed(seed: str) -> ValidationResult:
    if not seed or not seed.strip():
        return ValidationResult(False, "Seed is required")
    try:
        value = int(seed.strip())
    except ValueError:
        return ValidationResult(False, "Seed must be a non-negative integer")
    if value < 0:
        return ValidationResult(False, "Seed must be a non-negative integer")
    return ValidationResult(True)


# =============================================================================
# Balance checks
# =============================================================================

class TokenBalanceValidator:
    """Checks a token account holds at least a required amount."""

    def __init__(self, rpc):
        self.rpc = rpc

    async def validate_balance(self, account, required_amount: int, mint) -> TokenAccount:
        """
        Fetch account and compare its balance.

        Returns:
            The fetched TokenAccount

        Raises:
            InsufficientBalanceError: balance below required_amount
            AccountNotFoundError: account missing or fetch failed
        """
        account = to_pubkey(account, "account")
        mint = to_pubkey(mint, "mint")

        try:
            token_account = await self.rpc.get_token_account(account)
        except Exception as e:
            log.warning(f"Token account fetch failed for {account}: {e}")
            raise AccountNotFoundError(mint, account) from e

        if token_account is None:
            raise AccountNotFoundError(mint, account)

        if token_account.amount < required_amount:
            raise InsufficientBalanceError(required_amount, token_account.amount, mint)

        return token_account
