"""Persistence Retry — bounded, fixed-delay retry for write-then-read-back operations.

Invariants:
    - At most `attempts` calls; the last failure is re-raised for the caller to degrade
    - Only persistence failures are retried (SQLAlchemyError, DatabaseError); domain
      errors propagate on the first occurrence
    - Fixed delay between attempts (no backoff growth)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, DatabaseError)


async def retry_persistence(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    delay_ms: int = 100,
    label: str = "persistence",
) -> T:
    """Run operation until it succeeds or attempts are exhausted."""
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except RETRYABLE_ERRORS as e:
            if attempt >= attempts:
                raise
            logger.warning(
                f"{label} failed, retrying in {delay_ms}ms: {e}",
                extra={"attempt": attempt},
            )
            await asyncio.sleep(delay_ms / 1000)
    raise RuntimeError("unreachable")  # pragma: no cover
