"""Bounded-concurrency execution of asynchronous work units."""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional

from common.constants import DEFAULT_CONCURRENCY
from common.logging_config import get_logger
from uploader.exceptions import OperationCancelled

logger = get_logger(__name__)

WorkUnit = Callable[[], Awaitable[object]]


class CancellationToken:
    """Cooperative cancellation signal shared by every unit of one run."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Raise the signal. Only the first reason is kept."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info(f"Cancellation requested [reason={reason}]")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason)

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class SchedulerReport:
    """Terminal state counts for one scheduler run."""
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    not_started: int = 0


class BoundedWorkScheduler:
    """
    Runs work units with a fixed concurrency ceiling.

    Units start first-come-first-served from a queue as slots free up. With
    fail_fast, the first failure raises the shared cancellation token so
    queued units never start; started units are left to observe the token at
    their own checkpoints. `run` returns only after every started unit has
    finished.
    """

    def __init__(self, fail_fast: bool = True):
        self.fail_fast = fail_fast

    async def run(
        self,
        units: Iterable[WorkUnit],
        limit: int = DEFAULT_CONCURRENCY,
        token: Optional[CancellationToken] = None
    ) -> SchedulerReport:
        """
        Execute all units, at most `limit` at a time.

        Args:
            units: Zero-argument coroutine functions
            limit: Maximum number of concurrently running units
            token: Shared cancellation token (a private one is created if None)

        Returns:
            SchedulerReport with terminal state counts

        Raises:
            Exception: The first unit failure, with the others attached as notes
            OperationCancelled: If the token was raised without any failure and
                some units were cancelled or never started
        """
        if limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit}")

        token = token or CancellationToken()
        queue = deque(units)
        report = SchedulerReport()
        failures: List[BaseException] = []

        async def worker() -> None:
            while queue:
                unit = queue.popleft()
                if token.cancelled:
                    report.not_started += 1
                    continue
                try:
                    await unit()
                except OperationCancelled:
                    report.cancelled += 1
                except Exception as e:
                    report.failed += 1
                    failures.append(e)
                    logger.error(f"Work unit failed: {type(e).__name__}: {e}")
                    if self.fail_fast:
                        token.cancel(f"{type(e).__name__}: {e}")
                else:
                    report.succeeded += 1

        workers = [asyncio.create_task(worker()) for _ in range(min(limit, len(queue)))]
        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            token.cancel("scheduler cancelled")
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        logger.info(
            f"Scheduler drained [succeeded={report.succeeded}, failed={report.failed}, "
            f"cancelled={report.cancelled}, not_started={report.not_started}]"
        )

        if failures:
            first = failures[0]
            for other in failures[1:]:
                first.add_note(f"Also failed: {type(other).__name__}: {other}")
            raise first

        if token.cancelled and (report.cancelled or report.not_started):
            raise OperationCancelled(token.reason)

        return report
