"""Bounded retry for optimistic-concurrency collisions."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .exceptions import PersistenceConflictError
from .observability import metrics_collector

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    name: str,
    attempts: int | None = None,
    backoff_ms: int | None = None,
) -> T:
    """
    Run an operation, retrying it when it raises PersistenceConflictError.

    The session is rolled back before every retry so the next attempt reads
    fresh rows. Business rejections propagate immediately.

    Args:
        db: Session the operation writes through
        operation: Zero-argument coroutine factory performing one attempt
        name: Operation name for logs and metrics
        attempts: Override for settings.conflict_retry_attempts
        backoff_ms: Override for settings.conflict_retry_backoff_ms

    Returns:
        Result of the first successful attempt

    Raises:
        PersistenceConflictError: If every attempt collided
    """
    max_attempts = attempts or settings.conflict_retry_attempts
    base_backoff = settings.conflict_retry_backoff_ms if backoff_ms is None else backoff_ms

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except PersistenceConflictError:
            await db.rollback()
            metrics_collector.record_conflict(name)

            if attempt == max_attempts:
                logger.warning(
                    "Giving up after repeated persistence conflicts",
                    extra={"operation": name, "attempts": attempt}
                )
                raise

            delay = base_backoff * attempt * random.uniform(0.5, 1.5) / 1000
            logger.info(
                "Persistence conflict, retrying",
                extra={"operation": name, "attempt": attempt, "delay_seconds": round(delay, 3)}
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
