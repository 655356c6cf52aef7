"""Deadline guard for privileged operations.

A privileged call that outlives its deadline is abandoned, not cancelled: the
elevation prompt may still be on screen and killing the call half way is not
known to be safe. The orphaned task is kept referenced until it settles so its
result is logged instead of lost.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from privhelper_client.core.errors import OperationTimedOut

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ABANDONED: set[asyncio.Future] = set()


def abandoned_count() -> int:
    return len(_ABANDONED)


def _on_abandoned_done(label: str, task: asyncio.Future) -> None:
    _ABANDONED.discard(task)
    if task.cancelled():
        logger.info("%s finished after its deadline: cancelled", label)
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("%s finished after its deadline with error: %s", label, exc)
    else:
        logger.info("%s finished after its deadline", label)


async def with_timeout(operation: Awaitable[T], timeout_s: float, *, label: str = "operation") -> T:
    task = asyncio.ensure_future(operation)
    try:
        done, _pending = await asyncio.wait({task}, timeout=timeout_s)
    except asyncio.CancelledError:
        # Caller gave up; the privileged call keeps running.
        _abandon(task, label)
        raise

    if task in done:
        return task.result()

    _abandon(task, label)
    logger.warning("%s timed out after %ss", label, timeout_s)
    raise OperationTimedOut(label, timeout_s)


def _abandon(task: asyncio.Future, label: str) -> None:
    if task.done():
        return
    _ABANDONED.add(task)
    task.add_done_callback(lambda fut: _on_abandoned_done(label, fut))
