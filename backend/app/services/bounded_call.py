"""Deadline wrapper for remote calls.

The wrapped call is raced against a timer. When the timer wins the caller gets
``CallTimeoutError`` and moves on; the call itself keeps running and whatever
it eventually produces is retrieved and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from app.core.errors import CallTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _drop_late_result(label: str | None):
    def _callback(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("Late failure of abandoned call %s ignored: %s", label, error)
        else:
            logger.debug("Late result of abandoned call %s ignored", label)

    return _callback


async def with_timeout(operation: Awaitable[T], timeout_ms: float, label: str | None = None) -> T:
    if timeout_ms <= 0:
        raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")

    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(operation)
    started = loop.time()

    # asyncio.wait never cancels the task and clears its own timer on return
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.add_done_callback(_drop_late_result(label))
        raise
    if task in done:
        return task.result()

    elapsed_ms = (loop.time() - started) * 1000
    task.add_done_callback(_drop_late_result(label))
    logger.warning("Call %s timed out after %.0fms", label or "<anonymous>", elapsed_ms)
    raise CallTimeoutError(elapsed_ms, label)
