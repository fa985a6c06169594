"""Retry wrapper for Discord mutations.

Only server-side (5xx) Discord errors are retried. Client errors (404, 403,
validation), network errors and local exceptions propagate on the first
attempt, so a deleted message reaches the stale-message recovery path
immediately instead of after a round of pointless backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from relay_core.errors import is_server_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> T:
    """Await ``operation()``, retrying up to ``retries`` times on 5xx errors.

    The wait before retry ``n`` (0-based) is ``base_delay * 2**n`` seconds:
    1s, 2s, 4s with the defaults. No jitter; one process handles one event.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not is_server_error(e) or attempt >= retries:
                raise
            delay = base_delay * 2**attempt
            logger.warning(
                "Discord server error (attempt %d/%d): %s. Retrying in %.1fs...",
                attempt + 1,
                retries,
                e,
                delay,
            )
            await asyncio.sleep(delay)
            attempt += 1
