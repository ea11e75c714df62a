"""
Transaction Executor for escrow SDK.

Submits one operation at a time and drives it to a terminal state:

    idle -> pending -> confirming -> success
                 \\          \\
                  +----------+--> error
    (any) --cancel()--> idle

Each attempt races the submission against a timeout, then waits for the
signature at a fixed commitment. Retryable failures back off exponentially
with jitter; ledger execution failures are never resubmitted.

Cancellation is cooperative: it stops waiting on the current submission,
confirmation or delay. A submission already accepted by the node may still
land on-chain after cancel().
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Optional, Callable, Awaitable, List

from ..core import (
    DEFAULT_COMMITMENT,
    TransactionStatus, TransactionState, TransactionProgress,
)
from ..errors import (
    TransactionTimeoutError, ExecutionFailedError, TransactionCancelled,
    is_retryable, format_error,
)

log = logging.getLogger(__name__)


Operation = Callable[[], Awaitable[str]]
StateListener = Callable[[TransactionState], None]


@dataclass
class ExecutorConfig:
    """Executor configuration."""
    timeout_ms: int = 60_000       # Per-attempt submission timeout
    max_retries: int = 2           # Attempts = max_retries + 1
    base_delay_ms: int = 1_000
    max_delay_ms: int = 10_000
    jitter_ratio: float = 0.1      # Up to 10% of the delay added at random
    commitment: str = DEFAULT_COMMITMENT


class CancellationToken:
    """One-shot cancellation flag that can also be awaited."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise TransactionCancelled("Transaction cancelled")


class TransactionExecutor:
    """
    Resilient submit-and-confirm loop with observable state.

    Args:
        confirmer: ledger client providing get_latest_blockhash() and
            confirm_transaction(signature, commitment, last_valid_block_height)
        config: ExecutorConfig
        sleep: awaitable sleep(seconds); swap for a virtual clock in tests
        rng: uniform [0, 1) source for jitter
    """

    def __init__(self, confirmer, config: ExecutorConfig = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 rng: Callable[[], float] = random.random):
        self.confirmer = confirmer
        self.config = config or ExecutorConfig()
        self.state = TransactionState()
        self._sleep = sleep
        self._rng = rng
        self._listeners: List[StateListener] = []
        self._token: Optional[CancellationToken] = None

    # =========================================================================
    # State
    # =========================================================================

    def on_state_change(self, callback: StateListener) -> None:
        self._listeners.append(callback)

    def _set_state(self, token: Optional[CancellationToken], state: TransactionState) -> None:
        # A superseded or cancelled execution must not touch the state
        if token is not self._token:
            return
        self.state = state
        self._notify(state)

    def _notify(self, state: TransactionState) -> None:
        # A failing listener must not stall the state machine
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception:
                log.exception(f"State listener failed on {state.status.value}")

    @property
    def in_flight(self) -> bool:
        return self._token is not None

    def cancel(self) -> None:
        """Stop the current execution and return to idle. No-op when idle."""
        token = self._token
        if token is None:
            return
        token.cancel()
        self._set_state(token, TransactionState())
        self._token = None
        log.info("Transaction cancelled")

    def reset(self) -> None:
        """Cancel anything in flight and clear the last outcome."""
        self.cancel()
        self.state = TransactionState()
        self._notify(self.state)

    # =========================================================================
    # Policy
    # =========================================================================

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay before retrying after 0-based attempt, jitter included."""
        delay = min(self.config.base_delay_ms * 2 ** attempt, self.config.max_delay_ms)
        return delay + self._rng() * self.config.jitter_ratio * delay

    # =========================================================================
    # Suspension points
    # =========================================================================

    async def _race(self, awaitable: Awaitable, token: CancellationToken,
                    timeout: Optional[float] = None):
        """
        Await awaitable unless token is cancelled or timeout (seconds) passes.

        Raises:
            TransactionCancelled: token cancelled first
            TransactionTimeoutError: timeout passed first
        """
        if token.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            token.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if token.cancelled:
            if task.done() and not task.cancelled():
                task.exception()
            raise TransactionCancelled("Transaction cancelled")
        if task in done:
            return task.result()
        raise TransactionTimeoutError(self.config.timeout_ms)

    async def _confirm(self, signature: str, token: CancellationToken,
                       progress: TransactionProgress) -> None:
        self._set_state(token, TransactionState(
            status=TransactionStatus.CONFIRMING,
            signature=signature,
            progress=TransactionProgress(
                step="Confirming transaction",
                current_attempt=progress.current_attempt,
                max_attempts=progress.max_attempts,
            ),
        ))

        blockhash = await self._race(self.confirmer.get_latest_blockhash(), token)
        result = await self._race(
            self.confirmer.confirm_transaction(
                signature, self.config.commitment, blockhash.last_valid_block_height
            ),
            token,
        )
        if result.err is not None:
            raise ExecutionFailedError(signature, result.err, logs=result.logs)

    # =========================================================================
    # Execute
    # =========================================================================

    def _release(self, token: CancellationToken) -> None:
        if self._token is token:
            self._token = None

    async def execute(self, operation: Operation) -> Optional[str]:
        """
        Submit operation and wait for confirmation, retrying when allowed.

        Args:
            operation: zero-argument coroutine function returning a signature

        Returns:
            The confirmed signature, or None if cancelled

        Raises:
            The last failure once it is terminal or retries are exhausted
        """
        if self._token is not None:
            log.info("New transaction supersedes the one in flight")
            self.cancel()

        token = CancellationToken()
        self._token = token
        max_attempts = self.config.max_retries + 1
        last_error: Optional[BaseException] = None

        try:
            for attempt in range(max_attempts):
                progress = TransactionProgress(
                    step="Executing transaction",
                    current_attempt=attempt + 1,
                    max_attempts=max_attempts,
                )
                self._set_state(token, TransactionState(
                    status=TransactionStatus.PENDING, progress=progress,
                ))

                try:
                    signature = await self._race(
                        operation(), token, timeout=self.config.timeout_ms / 1000
                    )
                    log.info(f"Attempt {attempt + 1}/{max_attempts} submitted: {signature}")
                    await self._confirm(signature, token, progress)
                except TransactionCancelled:
                    raise
                except Exception as e:
                    last_error = e
                    if attempt >= self.config.max_retries or not is_retryable(e):
                        break

                    delay_ms = self.backoff_delay_ms(attempt)
                    log.warning(
                        f"Attempt {attempt + 1}/{max_attempts} failed: {e}. "
                        f"Retrying in {delay_ms:.0f}ms"
                    )
                    await self._race(self._sleep(delay_ms / 1000), token)
                    continue

                self._set_state(token, TransactionState(
                    status=TransactionStatus.SUCCESS, signature=signature,
                ))
                self._release(token)
                log.info(f"Transaction confirmed: {signature}")
                return signature

        except TransactionCancelled:
            return None
        except asyncio.CancelledError:
            self._set_state(token, TransactionState())
            self._release(token)
            raise

        message = format_error(last_error)
        self._set_state(token, TransactionState(
            status=TransactionStatus.ERROR, error=message,
        ))
        self._release(token)
        log.error(f"Transaction failed: {message}")
        raise last_error
