# ─────────────────────────────────────────────────────────────────────────────
# Background Task Runner — phase-2 work scheduled after a response
# ─────────────────────────────────────────────────────────────────────────────
# Tasks are held in a set so they are not garbage collected mid-flight.
# Failures are logged from the done-callback; nothing is re-raised to the
# request that scheduled the task. drain() awaits everything outstanding,
# which shutdown and the tests rely on.
# ─────────────────────────────────────────────────────────────────────────────


import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class BackgroundTaskRunner:
    """Owns fire-and-forget tasks and their error channel."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._failures = 0

    def submit(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and track it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self._failures += 1
            logger.error("background_task_failed", task=task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait until every submitted task (including ones they submit) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def failures(self) -> int:
        return self._failures
