"""
Ledger clients for escrow SDK.

The client provides a unified interface for:
- Fetching program and token accounts
- Building, signing and broadcasting transactions
- Waiting for confirmations
"""

from .solana import SolanaClient, SolanaConfig

__all__ = ["SolanaClient", "SolanaConfig"]
