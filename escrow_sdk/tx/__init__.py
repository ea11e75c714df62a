"""
Transaction submission for escrow SDK.

One executor per logical user action: submit, confirm, retry, cancel.
"""

from .executor import TransactionExecutor, ExecutorConfig, CancellationToken

__all__ = ["TransactionExecutor", "ExecutorConfig", "CancellationToken"]
