"""Retry a whole load-compute-save cycle on optimistic concurrency conflicts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from lms.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff: float = 0.0,
) -> T:
    """Run ``operation`` until it stops raising ConcurrencyConflictError.

    ``operation`` must re-read its state on every call. The last conflict is
    re-raised once ``attempts`` is exhausted; any other error propagates
    immediately.
    """
    if attempts < 1:
        msg = "attempts must be at least 1"
        raise ValueError(msg)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except ConcurrencyConflictError:
            if attempt == attempts:
                logger.warning("Giving up after %d conflicting attempts", attempts)
                raise
            logger.info("Concurrency conflict, retrying (attempt %d/%d)", attempt, attempts)
            if backoff:
                await asyncio.sleep(backoff * attempt)
    raise AssertionError("unreachable")
