import time
import random
import logging
from functools import wraps
from typing import Callable, TypeVar, Any, cast

import httpx
from postgrest.exceptions import APIError

from ..config import settings
from .exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Failures that mean the store could not answer; anything else is a bug and propagates
STORE_ERRORS = (APIError, httpx.HTTPError, OSError)


def retry_read(operation: str, attempts: int = None, backoff: float = None):
    """Retry a store read with exponential backoff, then raise StoreUnavailable.

    Domain errors and programming errors pass straight through.
    Must not be called on the event loop, it sleeps between attempts.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_attempts = attempts or settings.STORE_READ_RETRIES
            base = settings.STORE_RETRY_BACKOFF_SECONDS if backoff is None else backoff
            last_error = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except STORE_ERRORS as e:
                    last_error = e
                    logger.warning(f"{operation} failed (attempt {attempt}/{max_attempts}): {e}")
                    if attempt < max_attempts and base > 0:
                        time.sleep(base * (2 ** (attempt - 1)) + random.random() * base)

            logger.error(f"{operation} permanently failed: {last_error}")
            raise StoreUnavailable(operation, last_error)

        return cast(F, wrapper)
    return decorator


def guard_write(operation: str):
    """Surface any store failure on a write as StoreUnavailable, never retried"""

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except STORE_ERRORS as e:
                logger.error(f"{operation} failed: {e}")
                raise StoreUnavailable(operation, e)

        return cast(F, wrapper)
    return decorator
