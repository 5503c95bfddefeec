"""
Request batcher.

Coalesces concurrent calls that share a batch key into a single
underlying query. The first call for a key opens a short window; calls
arriving before it closes join the window; when it closes the query runs
once with every waiter's params and each waiter gets its own positional
result.
"""

import asyncio
import threading
from collections.abc import Sized
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

import structlog

from nutriscan.domain.shared.errors import BatchContractViolationError

logger = structlog.get_logger(__name__)

P = TypeVar("P")
R = TypeVar("R")

QueryFn = Callable[[list[P]], Awaitable[Sequence[R]]]


@dataclass
class PendingCall(Generic[P, R]):
    """A waiter and its share of the batch."""

    future: "asyncio.Future[R]"
    params: P


@dataclass
class _BatchWindow:
    query_fn: QueryFn[Any, Any]
    calls: list[PendingCall[Any, Any]] = field(default_factory=list)
    task: Optional["asyncio.Task[None]"] = None


class RequestBatcher:
    """Coalesces concurrent queries sharing a batch key.

    Example:
        >>> batcher = RequestBatcher(window_seconds=0.05)
        >>> async def lookup(barcodes: list[str]) -> list[bool]:
        ...     return [b.startswith("76") for b in barcodes]
        >>> async def scan_twice() -> list[bool]:
        ...     return await asyncio.gather(
        ...         batcher.batch_query("existence-user_1", lookup, "7622210449283"),
        ...         batcher.batch_query("existence-user_1", lookup, "3017620422003"),
        ...     )
    """

    def __init__(self, window_seconds: float = 0.05) -> None:
        """Initialize batcher.

        Args:
            window_seconds: Coalescing window (default 50ms)
        """
        if window_seconds < 0:
            raise ValueError(f"window_seconds must be >= 0, got {window_seconds}")

        self.window_seconds = window_seconds
        self._windows: dict[str, _BatchWindow] = {}
        self._lock = threading.Lock()

    async def batch_query(self, batch_key: str, query_fn: QueryFn[P, R], params: P) -> R:
        """Submit params to the open window for batch_key.

        Args:
            batch_key: Identifies a class of coalescable queries
            query_fn: Receives the list of all params of the window and
                returns a same-length, same-order result list. Only the
                function given by the call that opens the window is used.
            params: This caller's share of the batch

        Returns:
            This caller's positional result

        Raises:
            BatchContractViolationError: If query_fn returns the wrong
                number of results or something that is not a list
            Exception: Whatever query_fn raised, delivered to every waiter
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[R] = loop.create_future()

        with self._lock:
            window = self._windows.get(batch_key)
            if window is None:
                window = _BatchWindow(query_fn=query_fn)
                self._windows[batch_key] = window
                window.task = loop.create_task(self._run_window(batch_key, window))
                logger.debug("Batch window opened", batch_key=batch_key)
            window.calls.append(PendingCall(future=future, params=params))

        return await future

    async def _run_window(self, batch_key: str, window: _BatchWindow) -> None:
        try:
            await asyncio.sleep(self.window_seconds)
        except asyncio.CancelledError:
            with self._lock:
                if self._windows.get(batch_key) is window:
                    del self._windows[batch_key]
            self._cancel_all(window.calls)
            raise

        with self._lock:
            if self._windows.get(batch_key) is window:
                del self._windows[batch_key]
            calls = list(window.calls)

        all_params = [call.params for call in calls]
        logger.debug("Executing batch", batch_key=batch_key, size=len(calls))

        try:
            results = await window.query_fn(all_params)
            self._check_results(batch_key, results, len(calls))
        except asyncio.CancelledError:
            self._cancel_all(calls)
            raise
        except BatchContractViolationError as e:
            logger.error(
                "Batch result length mismatch",
                batch_key=batch_key,
                expected=e.expected,
                actual=e.actual,
            )
            self._fail_all(calls, e)
            return
        except Exception as e:
            logger.warning(
                "Batch query failed",
                batch_key=batch_key,
                size=len(calls),
                error=str(e),
            )
            self._fail_all(calls, e)
            return
        except BaseException as e:
            self._fail_all(calls, e)
            raise

        for call, result in zip(calls, results):
            if not call.future.done():
                call.future.set_result(result)

    @staticmethod
    def _check_results(batch_key: str, results: object, expected: int) -> None:
        # Generators and other unsized iterables cannot be matched to waiters
        if not isinstance(results, Sized):
            raise BatchContractViolationError(batch_key, expected=expected, actual=None)
        if len(results) != expected:
            raise BatchContractViolationError(batch_key, expected=expected, actual=len(results))

    @staticmethod
    def _fail_all(calls: list[PendingCall[Any, Any]], error: BaseException) -> None:
        for call in calls:
            if not call.future.done():
                call.future.set_exception(error)

    @staticmethod
    def _cancel_all(calls: list[PendingCall[Any, Any]]) -> None:
        for call in calls:
            if not call.future.done():
                call.future.cancel()

    def pending_windows(self) -> list[str]:
        """Batch keys with an open window."""
        with self._lock:
            return list(self._windows)

    def reset(self) -> None:
        """Cancel every open window and its waiters (test isolation)."""
        with self._lock:
            windows = list(self._windows.values())
            self._windows.clear()

        for window in windows:
            if window.task is not None:
                window.task.cancel()
            self._cancel_all(window.calls)

        if windows:
            logger.info("Batcher reset", cancelled_windows=len(windows))
