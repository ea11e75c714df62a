"""
Core types and constants for escrow SDK.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from solders.pubkey import Pubkey

from .errors import ValidationError


# =============================================================================
# Program IDs
# =============================================================================

DEFAULT_ESCROW_PROGRAM_ID = "8hMrECVej1KoLvygnfLytvGEuvQwGMT5jobXHkjjWpyS"

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")

# Seed prefix for the escrow PDA
ESCROW_SEED = b"escrow"

# =============================================================================
# Limits
# =============================================================================

U64_MAX = 2**64 - 1
U8_MAX = 2**8 - 1

# Largest integer a JS client can represent exactly; inputs above it are
# rejected so every client derives the same addresses
MAX_SAFE_INTEGER = 2**53 - 1

DEFAULT_COMMITMENT = "confirmed"


# =============================================================================
# Transaction state
# =============================================================================

class TransactionStatus(Enum):
    """Executor lifecycle states."""
    IDLE = "idle"                  # Nothing in flight (initial, reset or cancelled)
    PENDING = "pending"            # Submitting an attempt
    CONFIRMING = "confirming"      # Signature obtained, awaiting commitment
    SUCCESS = "success"            # Confirmed
    ERROR = "error"                # Terminal failure


@dataclass
class TransactionProgress:
    step: str
    current_attempt: int
    max_attempts: int


@dataclass
class TransactionState:
    """Snapshot of one executor's observable state."""
    status: TransactionStatus = TransactionStatus.IDLE
    signature: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[TransactionProgress] = None

    @property
    def is_loading(self) -> bool:
        return self.status in (TransactionStatus.PENDING, TransactionStatus.CONFIRMING)

    @property
    def is_idle(self) -> bool:
        return self.status == TransactionStatus.IDLE

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def is_confirming(self) -> bool:
        return self.status == TransactionStatus.CONFIRMING

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == TransactionStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "signature": self.signature,
            "error": self.error,
            "progress": {
                "step": self.progress.step,
                "current_attempt": self.progress.current_attempt,
                "max_attempts": self.progress.max_attempts,
            } if self.progress else None,
        }


# =============================================================================
# Ledger types
# =============================================================================

@dataclass
class TokenAccount:
    """Decoded SPL token account."""
    address: Pubkey
    mint: Pubkey
    owner: Pubkey
    amount: int
    state: int = 1


@dataclass
class AccountInfo:
    """Raw account as returned by the ledger."""
    address: Pubkey
    data: bytes
    owner: Pubkey


@dataclass
class BlockhashInfo:
    blockhash: str
    last_valid_block_height: int


@dataclass
class SignatureStatus:
    slot: int
    confirmations: Optional[int]
    err: Any = None
    confirmation_status: Optional[str] = None


@dataclass
class ConfirmationResult:
    """Outcome of waiting on a signature. err is the ledger's execution error."""
    signature: str
    err: Any = None
    logs: list = field(default_factory=list)


# =============================================================================
# Helpers
# =============================================================================

def to_pubkey(value, name: str = "address") -> Pubkey:
    """Accept a Pubkey or base58 string."""
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)) and len(value) == 32:
        return Pubkey(bytes(value))
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value.strip())
        except Exception as e:
            raise ValidationError(f"Invalid public key for {name}: {value!r}", field=name) from e
    raise ValidationError(f"Invalid public key for {name}: {value!r}", field=name)

