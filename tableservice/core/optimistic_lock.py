"""
Table Service — Optimistic locking retry decorator

Uses exponential backoff + jitter to handle StaleDataError.
StaleDataError occurs when a document's version was incremented by another
writer between our read and our compare-and-swap write.
"""
import asyncio
import functools
import logging
import random

from tableservice.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class StaleDataError(Exception):
    """Raised when an optimistic lock conflict is detected:
    the stored version changed between our read and update,
    meaning another concurrent writer won the race.
    """
    pass


class DocumentExistsError(StaleDataError):
    """A create with an explicit id lost to a concurrent create of the same id."""
    pass


def with_optimistic_retry(max_retries: int | None = None):
    """
    Decorator for async functions that perform a read-modify-write against
    the document store. On StaleDataError the whole function is re-run, so it
    must re-read everything it depends on.

    Usage:
        @with_optimistic_retry()
        async def _merge(self, ...):
            ...
    """
    _max = max_retries or settings.OPT_LOCK_MAX_RETRIES

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, _max + 1):
                try:
                    return await func(*args, **kwargs)
                except StaleDataError:
                    if attempt == _max:
                        logger.error(
                            "Optimistic lock conflict unresolved after %d retries for %s",
                            _max, func.__name__,
                        )
                        raise
                    # Exponential backoff: base * 2^attempt + jitter
                    base_delay = settings.OPT_LOCK_BASE_DELAY_MS / 1000.0
                    max_delay = settings.OPT_LOCK_MAX_DELAY_MS / 1000.0
                    jitter = random.uniform(0, settings.OPT_LOCK_JITTER_MS / 1000.0)
                    delay = min(base_delay * (2 ** attempt), max_delay) + jitter
                    logger.warning(
                        "StaleDataError in %s on attempt %d/%d, retrying in %.3fs",
                        func.__name__, attempt, _max, delay,
                    )
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
