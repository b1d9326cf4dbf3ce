"""
Utility functions for the cart drawer engine.
Includes retry logic for idempotent storefront reads and string helpers.
"""
import asyncio
import functools
import logging
import random
from typing import Callable, Type, Tuple, Optional

import httpx

from services.errors import CartNetworkError

logger = logging.getLogger(__name__)

# Transport errors that are worth a second attempt on idempotent GETs
TRANSIENT_HTTP_ERRORS: Tuple[Type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
)

TRANSIENT_STATUS_CODES = {500, 502, 503, 504}


def is_transient_error(exc: Exception) -> bool:
    """Check if an exception is a transient error that should be retried."""
    if isinstance(exc, TRANSIENT_HTTP_ERRORS):
        return True
    if isinstance(exc, CartNetworkError):
        return exc.status_code is None or exc.status_code in TRANSIENT_STATUS_CODES

    error_msg = str(exc).lower()
    transient_patterns = [
        "connection refused",
        "connection reset",
        "timed out",
        "temporarily unavailable",
    ]
    return any(pattern in error_msg for pattern in transient_patterns)


def retry_async(
    max_retries: int = 2,
    base_delay: float = 0.25,
    max_delay: float = 2.0,
    exponential_backoff: bool = True,
    jitter: bool = True,
    retry_on: Optional[Tuple[Type[Exception], ...]] = None,
):
    """
    Decorator for async functions that retries on transient failures.

    Only for idempotent reads: cart mutations must never be replayed, and
    rate-limit responses are not transient (retrying would hit the limit again).

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_backoff: Whether to use exponential backoff
        jitter: Whether to add random jitter to delays
        retry_on: Tuple of exception types to retry on (defaults to transient HTTP errors)
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_exception = e

                    if retry_on:
                        should_retry = isinstance(e, retry_on)
                    else:
                        should_retry = is_transient_error(e)

                    if not should_retry or attempt >= max_retries:
                        raise

                    if exponential_backoff:
                        delay = min(base_delay * (2 ** attempt), max_delay)
                    else:
                        delay = base_delay

                    if jitter:
                        delay = delay * (0.5 + random.random())  # 50-150% of delay

                    logger.warning(
                        f"Retry {attempt + 1}/{max_retries} for {func.__name__} "
                        f"after {delay:.2f}s due to: {type(e).__name__}: {str(e)[:100]}"
                    )
                    await asyncio.sleep(delay)

            if last_exception:
                raise last_exception

        return wrapper
    return decorator


def sanitize_string(value: Optional[str], max_length: int = 255, default: str = "") -> str:
    """Sanitize a string value before it leaves the client."""
    if value is None:
        return default
    cleaned = str(value).replace("\x00", "").strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned
