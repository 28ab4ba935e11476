from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .errors import RETRYABLE_ERRORS

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
    label: Optional[str] = None,
) -> T:
    """Await ``operation()``, retrying transient failures with exponential backoff.

    The delay before retry ``n`` (counting from zero) is ``base_delay * 2**n``.
    Errors outside ``retry_on`` propagate immediately; after the last attempt
    the final error is re-raised unchanged.
    """
    attempts = max(1, attempts)
    name = label or getattr(operation, "__name__", "operation")
    for attempt in range(attempts):
        try:
            return await operation()
        except retry_on as exc:
            if attempt == attempts - 1:
                logger.warning("%s failed after %d attempts: %s", name, attempts, exc)
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                name,
                attempt + 1,
                attempts,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
