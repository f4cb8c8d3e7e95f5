"""Error handling and retry logic for read-only Reddit API requests."""

import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar, cast

from asyncprawcore.exceptions import (
    RequestException,
    ResponseException,
    ServerError,
    TooManyRequests,
)

from comment_mop.collector.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")
AsyncFunc = Callable[..., Awaitable[T]]


def _retry_after(error: TooManyRequests) -> Optional[str]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    return headers.get("retry-after") or headers.get("Retry-After")


def with_exponential_backoff(
    max_retries: int = 3,
    initial_backoff: float = 1.0,
    max_backoff: float = 16.0,
    backoff_factor: float = 2.0,
) -> Callable[[AsyncFunc[T]], AsyncFunc[T]]:
    """
    Decorator for retrying async provider methods with exponential backoff.

    Server errors (5xx) and transport errors are retried. 429 responses are
    waited out through the instance's ``rate_limiter`` attribute (if it has one)
    and do not count as a retry. Any other response error is raised at once.
    Only wrap calls that are safe to repeat; remove/lock are not.

    Args:
        max_retries: Maximum number of retry attempts
        initial_backoff: Initial backoff time in seconds
        max_backoff: Maximum backoff time in seconds
        backoff_factor: Multiplier for backoff time between retries

    Returns:
        Decorator function
    """
    def decorator(func: AsyncFunc[T]) -> AsyncFunc[T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            rate_limiter: Optional[RateLimiter] = getattr(args[0], "rate_limiter", None) if args else None
            retries = 0
            backoff = initial_backoff

            while True:
                try:
                    return await func(*args, **kwargs)

                except TooManyRequests as e:
                    if rate_limiter is None:
                        raise
                    logger.warning(f"Rate limited (429) in {func.__name__}: {e}")
                    await rate_limiter.handle_429(_retry_after(e))
                    continue

                except (ServerError, RequestException) as e:
                    if retries >= max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded in {func.__name__}: {e}")
                        raise

                    logger.warning(
                        f"Transient error in {func.__name__}: {e}. "
                        f"Retrying in {backoff:.2f}s ({retries+1}/{max_retries})"
                    )
                    await asyncio.sleep(backoff)
                    retries += 1
                    backoff = min(backoff * backoff_factor, max_backoff)

                except ResponseException as e:
                    status = getattr(getattr(e, "response", None), "status", "?")
                    logger.warning(f"Client error {status} in {func.__name__}: {e}")
                    raise

        return cast(AsyncFunc[T], wrapper)
    return decorator
