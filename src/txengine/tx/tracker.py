"""
Confirmation Tracker - waits for a transaction's outcome.

Polls the node for a receipt at a fixed interval under a bounded,
cancellable timeout and classifies what it finds. Trackers hold no state
between calls, so any number may run concurrently against one node.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

import structlog

from txengine.config import EngineConfig
from txengine.core.result import ConfirmationResult, ConfirmationStatus
from txengine.core.transaction import TransactionReceipt
from txengine.errors import NetworkError
from txengine.node.interface import NodeInterface

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[float, int], None]


@dataclass
class _PollState:
    start: float
    polls: int = 0
    failures: int = 0
    receipt: Optional[TransactionReceipt] = None
    last_error: Optional[str] = None


class ConfirmationTracker:
    """
    Waits for receipts.

    State machine: Pending -> {Success, Reverted, TimedOut} or NetworkError
    when polling fails repeatedly. A cancelled wait returns CANCELLED, which
    is not a ledger outcome.
    """

    def __init__(
        self,
        node: NodeInterface,
        config: EngineConfig,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the tracker.

        Args:
            node: Node interface for receipt queries
            config: Engine configuration (intervals, bound, failure budget)
            clock: Monotonic time source; defaults to the event loop clock.
                An in-flight poll is always bounded in event loop seconds.
            sleep: Coroutine used between polls; defaults to asyncio.sleep
        """
        self.node = node
        self.poll_interval = config.poll_interval_seconds
        self.timeout = config.confirmation_timeout_seconds
        self.progress_interval = config.progress_interval_seconds
        self.confirmations = config.confirmations
        self.max_poll_failures = config.max_poll_failures
        self._clock = clock
        self._sleep = sleep or asyncio.sleep

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    async def await_confirmation(
        self,
        tx_hash: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
        confirmations: Optional[int] = None,
    ) -> ConfirmationResult:
        """
        Wait for a transaction to be included and classify the outcome.

        Args:
            tx_hash: Hash returned by the broadcaster
            timeout: Bound on the total wait (configured default if None)
            cancel_event: When set, polling stops at once and CANCELLED is returned
            on_progress: Called with (elapsed_seconds, polls) at the progress
                cadence; never delays polling
            confirmations: Blocks (including the inclusion block) to wait for

        Returns:
            The terminal (or cancelled) result
        """
        timeout = self.timeout if timeout is None else timeout
        confirmations = self.confirmations if confirmations is None else confirmations

        state = _PollState(start=self._now())
        deadline = state.start + timeout

        progress_task = None
        if on_progress is not None:
            progress_task = asyncio.create_task(
                self._report_progress(tx_hash, state, on_progress)
            )

        logger.info(
            "awaiting_confirmation",
            tx_hash=tx_hash,
            timeout=timeout,
            confirmations=confirmations,
        )

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    return self._finish(tx_hash, state, ConfirmationStatus.CANCELLED, timeout)

                remaining = deadline - self._now()
                if remaining <= 0:
                    break

                interrupted, outcome = await self._race(
                    self._poll(tx_hash, state, confirmations),
                    cancel_event,
                    remaining,
                )
                if interrupted is ConfirmationStatus.CANCELLED:
                    return self._finish(tx_hash, state, interrupted, timeout)
                if interrupted is ConfirmationStatus.TIMED_OUT:
                    logger.warning("receipt_poll_abandoned", tx_hash=tx_hash, polls=state.polls)
                    break
                if outcome is not None:
                    return outcome

                remaining = deadline - self._now()
                if remaining <= 0:
                    break

                interrupted, _ = await self._race(
                    self._sleep(min(self.poll_interval, remaining)),
                    cancel_event,
                )
                if interrupted is ConfirmationStatus.CANCELLED:
                    return self._finish(tx_hash, state, interrupted, timeout)

            return self._finish(tx_hash, state, ConfirmationStatus.TIMED_OUT, timeout)

        finally:
            if progress_task is not None:
                progress_task.cancel()
                await asyncio.gather(progress_task, return_exceptions=True)

    async def await_many(
        self,
        tx_hashes: Iterable[str],
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[str, ConfirmationResult]:
        """Track several transactions concurrently."""
        hashes = list(tx_hashes)
        results = await asyncio.gather(*(
            self.await_confirmation(tx_hash, timeout=timeout, cancel_event=cancel_event)
            for tx_hash in hashes
        ))
        return dict(zip(hashes, results))

    async def _poll(
        self,
        tx_hash: str,
        state: _PollState,
        confirmations: int,
    ) -> Optional[ConfirmationResult]:
        """Run one poll; return a result once the outcome is known."""
        state.polls += 1

        try:
            if state.receipt is None:
                state.receipt = await self.node.get_transaction_receipt(tx_hash)

            if state.receipt is None:
                state.failures = 0
                logger.debug("receipt_pending", tx_hash=tx_hash, polls=state.polls)
                return None

            if confirmations > 1:
                depth = await self.node.get_confirmation_depth(state.receipt)
                if depth < confirmations:
                    state.failures = 0
                    logger.debug(
                        "awaiting_depth",
                        tx_hash=tx_hash,
                        depth=depth,
                        required=confirmations,
                    )
                    return None

        except NetworkError as e:
            state.failures += 1
            state.last_error = str(e)
            logger.warning(
                "receipt_poll_failed",
                tx_hash=tx_hash,
                failures=state.failures,
                error=str(e),
            )
            if state.failures >= self.max_poll_failures:
                return self._finish(tx_hash, state, ConfirmationStatus.NETWORK_ERROR, None)
            return None

        result = ConfirmationResult.from_receipt(
            state.receipt,
            elapsed_seconds=self._now() - state.start,
            polls=state.polls,
        )
        log = logger.info if result.is_success else logger.warning
        log(
            "tx_confirmed" if result.is_success else "tx_reverted",
            tx_hash=tx_hash,
            block_number=state.receipt.block_number,
            gas_used=state.receipt.gas_used,
            elapsed=round(result.elapsed_seconds, 2),
        )
        return result

    def _finish(
        self,
        tx_hash: str,
        state: _PollState,
        status: ConfirmationStatus,
        timeout: Optional[float],
    ) -> ConfirmationResult:
        elapsed = self._now() - state.start
        detail = None

        if status == ConfirmationStatus.NETWORK_ERROR:
            detail = state.last_error
        elif status == ConfirmationStatus.TIMED_OUT and state.receipt is not None:
            detail = f"Included in block {state.receipt.block_number} but not yet final"

        if status == ConfirmationStatus.CANCELLED:
            logger.info("confirmation_cancelled", tx_hash=tx_hash, elapsed=round(elapsed, 2))
        else:
            logger.warning(
                "confirmation_ended",
                tx_hash=tx_hash,
                status=status.value,
                polls=state.polls,
                elapsed=round(elapsed, 2),
                detail=detail,
            )

        return ConfirmationResult(
            tx_hash=tx_hash,
            status=status,
            detail=detail,
            elapsed_seconds=elapsed,
            polls=state.polls,
            timeout_seconds=timeout,
        )

    async def _race(
        self,
        awaitable: Awaitable[Any],
        cancel_event: Optional[asyncio.Event],
        timeout: Optional[float] = None,
    ) -> Tuple[Optional[ConfirmationStatus], Any]:
        """
        Await `awaitable` unless `cancel_event` fires or `timeout` passes first.

        An unfinished awaitable is cancelled before returning.

        Returns:
            (CANCELLED or TIMED_OUT, None) when interrupted, otherwise (None, result)
        """
        if cancel_event is None and timeout is None:
            return None, await awaitable

        work = asyncio.ensure_future(awaitable)
        waiters = {work}
        if cancel_event is not None:
            waiters.add(asyncio.ensure_future(cancel_event.wait()))
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if cancel_event is not None and cancel_event.is_set():
            return ConfirmationStatus.CANCELLED, None
        if work.cancelled():
            return ConfirmationStatus.TIMED_OUT, None
        return None, work.result()

    async def _report_progress(
        self,
        tx_hash: str,
        state: _PollState,
        on_progress: ProgressCallback,
    ) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            try:
                on_progress(self._now() - state.start, state.polls)
            except Exception as e:
                logger.warning("progress_callback_failed", tx_hash=tx_hash, error=str(e))
