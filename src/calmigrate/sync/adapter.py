"""
Synchronous adapter for the async migration orchestrator.

This module provides SyncMigrationAdapter, which wraps a
MigrationOrchestrator and exposes synchronous versions of its operations
for management commands, task queue workers and other sync callers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from calmigrate.models import AdvanceResult, MigrationDetection, ProgressState, Stage
from calmigrate.orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_CALLS = 10_000


class SyncMigrationAdapter:
    """
    Synchronous adapter for MigrationOrchestrator.

    Handles three event loop scenarios:
    1. No event loop exists -> uses asyncio.run()
    2. Event loop exists but not running -> uses asyncio.run() as well,
       leaving the idle loop untouched
    3. Event loop is running -> runs the coroutine on a fresh loop in a
       worker thread and waits for it

    Example:
        >>> adapter = SyncMigrationAdapter(orchestrator, timeout=60.0)
        >>>
        >>> # In a management command
        >>> def handle():
        ...     results = adapter.run_to_completion_sync()
        ...     print(results[-1].to_response())

    Warning:
        Calling the adapter from inside a running event loop blocks that
        loop until the call finishes. Use the orchestrator directly in
        async code.
    """

    # Class-level executor for running loop case
    _executor: ThreadPoolExecutor | None = None
    _executor_lock: threading.Lock = threading.Lock()

    def __init__(
        self,
        orchestrator: MigrationOrchestrator,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize the sync adapter.

        Args:
            orchestrator: The orchestrator to wrap
            timeout: Default timeout in seconds per operation (None = no timeout)

        Raises:
            TypeError: If orchestrator is not a MigrationOrchestrator
        """
        if not isinstance(orchestrator, MigrationOrchestrator):
            raise TypeError(
                "orchestrator must be a MigrationOrchestrator instance, "
                f"got {type(orchestrator).__name__}"
            )
        self._orchestrator = orchestrator
        self._timeout = timeout

    @property
    def orchestrator(self) -> MigrationOrchestrator:
        return self._orchestrator

    @classmethod
    def _get_executor(cls) -> ThreadPoolExecutor:
        """Get or create the shared thread pool executor."""
        with cls._executor_lock:
            if cls._executor is None:
                cls._executor = ThreadPoolExecutor(
                    max_workers=2,
                    thread_name_prefix="calmigrate_sync",
                )
            return cls._executor

    @classmethod
    def shutdown_executor(cls) -> None:
        """
        Shutdown the shared thread pool executor.

        After calling this, the executor will be recreated on next use.
        """
        with cls._executor_lock:
            if cls._executor is not None:
                cls._executor.shutdown(wait=True)
                cls._executor = None

    def _run_sync(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """
        Execute coroutine synchronously, handling all event loop scenarios.

        Args:
            coro: The coroutine to execute
            timeout: Optional timeout override

        Returns:
            The result of the coroutine

        Raises:
            TimeoutError: If operation exceeds timeout
            Exception: Any exception raised by the coroutine
        """
        effective_timeout = timeout if timeout is not None else self._timeout

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No running event loop - the common case for sync callers
            return self._run_in_new_loop(coro, effective_timeout)

        logger.warning(
            "SyncMigrationAdapter called from running event loop. "
            "Consider awaiting the orchestrator directly."
        )
        future = self._get_executor().submit(self._run_in_new_loop, coro, effective_timeout)
        return future.result()

    @staticmethod
    def _run_in_new_loop(coro: Coroutine[Any, Any, T], timeout: float | None) -> T:
        try:
            return asyncio.run(asyncio.wait_for(coro, timeout=timeout))
        except TimeoutError as e:
            raise TimeoutError(f"Sync operation timed out after {timeout}s") from e

    def advance_sync(
        self,
        total_overrides: dict[Stage, int] | None = None,
        *,
        timeout: float | None = None,
    ) -> AdvanceResult:
        """
        Synchronously run one unit of migration work.

        Args:
            total_overrides: Caller supplied totals per stage
            timeout: Override default timeout for this operation

        Returns:
            AdvanceResult of the call
        """
        return self._run_sync(self._orchestrator.advance(total_overrides), timeout=timeout)

    def detect_sync(self, *, timeout: float | None = None) -> MigrationDetection:
        """Synchronously check whether a migration can be offered or resumed."""
        return self._run_sync(self._orchestrator.detect(), timeout=timeout)

    def status_sync(self, *, timeout: float | None = None) -> ProgressState | None:
        """Synchronously get the persisted progress of the current run."""
        return self._run_sync(self._orchestrator.status(), timeout=timeout)

    def reset_sync(self, *, timeout: float | None = None) -> None:
        """Synchronously start a new tracking generation."""
        self._run_sync(self._orchestrator.reset(), timeout=timeout)

    def run_to_completion_sync(
        self,
        max_calls: int = DEFAULT_MAX_CALLS,
        *,
        timeout: float | None = None,
    ) -> list[AdvanceResult]:
        """
        Call advance until the run completes.

        Each call runs on its own event loop, like separate requests would.

        Args:
            max_calls: Upper bound on the number of advance calls
            timeout: Per-call timeout override

        Returns:
            Results of every call, the terminal result last

        Raises:
            RuntimeError: If the run did not complete within max_calls
        """
        results: list[AdvanceResult] = []
        for _ in range(max_calls):
            result = self.advance_sync(timeout=timeout)
            results.append(result)
            if result.is_complete:
                return results
        raise RuntimeError(f"Migration did not complete within {max_calls} calls")

    def __repr__(self) -> str:
        return f"SyncMigrationAdapter(timeout={self._timeout})"


__all__ = ["SyncMigrationAdapter"]
