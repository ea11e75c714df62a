"""
Error taxonomy for escrow SDK.

Local checks (validation, balances, authorization) raise before anything is
submitted. Submission failures feed the executor's retry policy; ledger
execution failures are terminal.
"""

from typing import Optional, List, Any


# Wallet error codes that must never be retried
USER_REJECTED_CODE = 4001
WALLET_UNAVAILABLE_CODE = 4100
INTERNAL_RPC_ERROR_CODE = -32603

NON_RETRYABLE_ERROR_CODES = (USER_REJECTED_CODE, WALLET_UNAVAILABLE_CODE)
NON_RETRYABLE_ERROR_KEYWORDS = (
    "insufficient",
    "invalid",
    "unauthorized",
    "rejected",
)


class EscrowSDKError(Exception):
    """Base class for all SDK errors."""
    retryable = False

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(EscrowSDKError):
    """Bad local parameters. Never submitted."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InsufficientBalanceError(EscrowSDKError):
    def __init__(self, required: int, available: int, mint: Any = None):
        super().__init__(
            f"Insufficient token balance. Required: {required}, Available: {available}"
        )
        self.required = required
        self.available = available
        self.mint = mint


class AccountNotFoundError(EscrowSDKError):
    def __init__(self, mint: Any, account: Any = None):
        super().__init__(
            f"Token account for {mint} not found. Please create it first in your wallet."
        )
        self.mint = mint
        self.account = account


class EscrowNotFoundError(EscrowSDKError):
    def __init__(self, address: Any):
        super().__init__(
            f"Escrow {address} not found - it may have been completed or refunded"
        )
        self.address = address


class UnauthorizedError(EscrowSDKError):
    """Local mirror of the program's maker check."""


class SubmissionError(EscrowSDKError):
    """Transport or signing failure while submitting."""
    retryable = True

    def __init__(self, message: str, code: Optional[int] = None,
                 logs: Optional[List[str]] = None):
        super().__init__(message, code=code)
        self.logs = logs or []


class RpcError(SubmissionError):
    """JSON-RPC error object returned by the ledger node."""

    def __init__(self, method: str, message: str, code: Optional[int] = None,
                 data: Any = None):
        logs = data.get("logs") if isinstance(data, dict) else None
        super().__init__(message, code=code, logs=logs)
        self.method = method
        self.data = data


class TransactionExpiredError(SubmissionError):
    """Blockhash expired before the signature reached the commitment."""

    def __init__(self, signature: str, last_valid_block_height: int):
        super().__init__(
            f"Signature {signature} has expired: block height exceeded {last_valid_block_height}"
        )
        self.signature = signature
        self.last_valid_block_height = last_valid_block_height


class TransactionTimeoutError(EscrowSDKError):
    retryable = True

    def __init__(self, timeout_ms: int):
        super().__init__("Transaction timeout")
        self.timeout_ms = timeout_ms


class ExecutionFailedError(EscrowSDKError):
    """The ledger ran the transaction and it failed. Never retried."""

    def __init__(self, signature: str, details: Any, logs: Optional[List[str]] = None):
        super().__init__(f"Transaction failed: {details}")
        self.signature = signature
        self.details = details
        self.logs = logs or []


class TransactionCancelled(EscrowSDKError):
    """Raised internally to unwind a cancelled execution."""


# =============================================================================
# Classification
# =============================================================================

def is_retryable(error: BaseException) -> bool:
    """Return True if a failed attempt may be submitted again."""
    if isinstance(error, (ExecutionFailedError, TransactionCancelled)):
        return False

    if getattr(error, "code", None) in NON_RETRYABLE_ERROR_CODES:
        return False

    message = str(error).lower()
    if any(keyword in message for keyword in NON_RETRYABLE_ERROR_KEYWORDS):
        return False

    if isinstance(error, EscrowSDKError):
        return error.retryable
    return True


def format_error(error: Optional[BaseException]) -> str:
    """
    Reduce a failure to one human-readable message.

    Program log lines win over transport messages when present.
    """
    if error is None:
        return "Transaction failed unexpectedly"

    logs = getattr(error, "logs", None) or []
    for line in logs:
        if "Program log:" in line or "Error:" in line:
            detail = line.split("Program log: ", 1)[-1] if line.startswith("Program log: ") else line
            return f"Program error: {detail}"

    code = getattr(error, "code", None)
    if code == USER_REJECTED_CODE:
        return "Transaction rejected by user"
    if code == WALLET_UNAVAILABLE_CODE:
        return "Wallet not connected"
    if code == INTERNAL_RPC_ERROR_CODE:
        return "Network error. Please check your connection."

    message = str(error).lower()

    if "blockhash" in message or "expired" in message:
        return "Transaction expired. Please try again."
    if "insufficient" in message:
        return "Insufficient funds for transaction"
    if "timeout" in message:
        return "Transaction timed out. Please try again."
    if "simulation failed" in message:
        return "Transaction simulation failed. Please check your inputs."
    if "account not found" in message:
        return "Required account not found. Please ensure all tokens are properly initialized."

    return str(error) or "Transaction failed unexpectedly"
