"""
Explicit extension points of the migration engine.

Callbacks are registered on a MigrationHooks instance (normally the one
owned by the orchestrator) and may be plain functions or coroutine
functions:

- before_transform(stage, source_id): before a claimed row is fetched
- after_batch(stage, batch_result): after a stage processor batch
- after_rebuild(rebuild_result): after the relationship rebuild

A failing callback is logged and does not interrupt the migration.

Example:
    >>> hooks = MigrationHooks()
    >>> hooks.on_after_batch(lambda stage, result: print(stage, result.processed))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from calmigrate.models import BatchResult, RebuildResult, Stage

logger = logging.getLogger(__name__)

BeforeTransformHook = Callable[[Stage, int], Awaitable[None] | None]
AfterBatchHook = Callable[[Stage, BatchResult], Awaitable[None] | None]
AfterRebuildHook = Callable[[RebuildResult], Awaitable[None] | None]


def _hook_name(callback: Callable[..., Any]) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class MigrationHooks:
    """
    Registry of migration callbacks.
    """

    def __init__(self) -> None:
        self._before_transform: list[BeforeTransformHook] = []
        self._after_batch: list[AfterBatchHook] = []
        self._after_rebuild: list[AfterRebuildHook] = []

    def on_before_transform(self, callback: BeforeTransformHook) -> BeforeTransformHook:
        """
        Register a callback run before each claimed row is transformed.

        Returns the callback, so this can be used as a decorator.
        """
        self._require_callable(callback)
        self._before_transform.append(callback)
        return callback

    def on_after_batch(self, callback: AfterBatchHook) -> AfterBatchHook:
        """Register a callback run after each stage processor batch."""
        self._require_callable(callback)
        self._after_batch.append(callback)
        return callback

    def on_after_rebuild(self, callback: AfterRebuildHook) -> AfterRebuildHook:
        """Register a callback run once after the relationship rebuild."""
        self._require_callable(callback)
        self._after_rebuild.append(callback)
        return callback

    def clear(self) -> None:
        """Remove every registered callback."""
        self._before_transform.clear()
        self._after_batch.clear()
        self._after_rebuild.clear()

    @property
    def count(self) -> int:
        """Total number of registered callbacks."""
        return len(self._before_transform) + len(self._after_batch) + len(self._after_rebuild)

    async def before_transform(self, stage: Stage, source_id: int) -> None:
        await self._run(self._before_transform, stage, source_id)

    async def after_batch(self, stage: Stage, result: BatchResult) -> None:
        await self._run(self._after_batch, stage, result)

    async def after_rebuild(self, result: RebuildResult) -> None:
        await self._run(self._after_rebuild, result)

    @staticmethod
    def _require_callable(callback: Any) -> None:
        if not callable(callback):
            raise TypeError(f"Hook must be callable, got {type(callback)}")

    @staticmethod
    async def _run(callbacks: list[Any], *args: Any) -> None:
        for callback in list(callbacks):
            try:
                result = callback(*args)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    "Migration hook %s failed: %s",
                    _hook_name(callback),
                    e,
                    exc_info=True,
                    extra={"hook": _hook_name(callback)},
                )


__all__ = [
    "MigrationHooks",
    "BeforeTransformHook",
    "AfterBatchHook",
    "AfterRebuildHook",
]
