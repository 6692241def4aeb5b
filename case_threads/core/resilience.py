"""Timeouts and retry/backoff for store calls.

Every store round-trip that backs a live UI is bounded by
``store_timeout_seconds``. Timeouts and dropped connections surface as
StoreUnavailableError, which callers retry with exponential backoff.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from .config import get_settings
from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float | None = None) -> T:
    """Await a store call, translating timeouts and connection loss."""
    limit = timeout if timeout is not None else get_settings().store_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as exc:
        raise StoreUnavailableError(f"Store call exceeded {limit:.1f}s") from exc
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailableError(f"Store connection failed: {exc.orig}") from exc


async def retry_store_call(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float = 4.0,
    on_retry: Callable[[], Awaitable[None]] | None = None,
) -> T:
    """Run ``operation`` and retry it on StoreUnavailableError.

    ``on_retry`` runs before each new attempt (typically a session
    rollback so the retry starts from a clean transaction).
    """
    settings = get_settings()
    attempts = max_attempts if max_attempts is not None else settings.store_retry_attempts
    delay_base = base_delay if base_delay is not None else settings.store_retry_base_delay

    for attempt in range(attempts):
        try:
            return await operation()
        except StoreUnavailableError as exc:
            if attempt >= attempts - 1:
                raise
            delay = min(max_delay, delay_base * (2**attempt))
            if delay:
                delay = delay + random.uniform(0, delay / 2)
            logger.warning(f"{description} failed, retrying in {delay:.2f}s", exc_info=exc)
            if delay:
                await asyncio.sleep(delay)
            if on_retry is not None:
                await on_retry()

    raise StoreUnavailableError(f"{description} exhausted {attempts} attempts")
