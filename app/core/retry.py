"""Retry and error classification utilities for external calls.

Transactions use the classifiers to turn Azure SDK and httpx errors into
NEEDS_TIME (transient) or FAILED (permanent). The HTTP clients use
retry_with_backoff for a few quick in-call retries; anything longer is left
to the next reconciler tick.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import TypeVar

import httpx
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)

from app.orchestrator.exceptions import HardFailureError, TransientExternalError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retryable HTTP status codes
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

# Non-retryable exceptions
NON_RETRYABLE_EXCEPTIONS = (
    ClientAuthenticationError,
    HardFailureError,
    ValueError,
    TypeError,
    KeyError,
)

# Connection-level failures from either client stack
TRANSIENT_EXCEPTIONS = (
    TransientExternalError,
    ServiceRequestError,
    ServiceResponseError,
    httpx.TimeoutException,
    httpx.TransportError,
    TimeoutError,
    ConnectionError,
)


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_retries: int = 3
    backoff_factor: float = 1.0
    max_wait: float = 60.0
    retryable_exceptions: tuple = (Exception,)


def status_code_of(error: BaseException) -> int | None:
    """Extract the HTTP status code from an Azure or httpx error."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    if isinstance(error, HttpResponseError):
        return getattr(error, "status_code", None)
    return None


def is_conflict_error(error: BaseException) -> bool:
    """Entity already exists; creating transactions treat this as success."""
    if isinstance(error, ResourceExistsError):
        return True
    if status_code_of(error) == 409:
        return True
    message = str(error)
    return any(
        marker in message
        for marker in ("AlreadyExists", "RoleAssignmentExists", "EntityAlreadyExists")
    )


def is_not_found_error(error: BaseException) -> bool:
    """Entity is gone; deleting transactions treat this as success."""
    if isinstance(error, ResourceNotFoundError):
        return True
    return status_code_of(error) == 404


def is_transient_error(error: BaseException) -> bool:
    """Strict check: only errors known to clear up on their own."""
    if isinstance(error, NON_RETRYABLE_EXCEPTIONS):
        return False
    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return True
    status_code = status_code_of(error)
    return status_code is not None and status_code in RETRYABLE_STATUS_CODES


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is worth an immediate in-call retry."""
    # Non-retryable exceptions
    if isinstance(error, NON_RETRYABLE_EXCEPTIONS):
        return False

    # HTTP errors - check status code
    status_code = status_code_of(error)
    if status_code is not None:
        return status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return True

    # Default: retry unknown errors
    return True


def retry_with_backoff(policy: RetryPolicy | None = None):
    """Decorator that retries async functions with exponential backoff."""
    if policy is None:
        policy = RetryPolicy()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(policy.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except policy.retryable_exceptions as e:
                    last_exception = e

                    # Don't retry non-retryable errors
                    if not is_retryable_error(e):
                        raise

                    # Last attempt failed
                    if attempt >= policy.max_retries:
                        logger.warning(
                            f"{func.__name__} failed after {policy.max_retries + 1} attempts: {e}"
                        )
                        raise

                    # Calculate backoff with jitter
                    wait_time = min(
                        policy.backoff_factor * (2 ** attempt) + random.uniform(0, 0.5),
                        policy.max_wait,
                    )

                    logger.debug(
                        f"{func.__name__} attempt {attempt + 1}/{policy.max_retries + 1} "
                        f"failed: {e}. Retrying in {wait_time:.1f}s..."
                    )
                    await asyncio.sleep(wait_time)

            raise last_exception if last_exception else RuntimeError("Unexpected retry failure")

        return wrapper

    return decorator


# In-call retries stay short: the reconciler tick is the long retry loop
KUBERNETES_API_POLICY = RetryPolicy(
    max_retries=2, backoff_factor=0.5, max_wait=5.0, retryable_exceptions=(httpx.HTTPError,)
)
SCHEDULER_API_POLICY = RetryPolicy(
    max_retries=2, backoff_factor=0.5, max_wait=5.0, retryable_exceptions=(httpx.HTTPError,)
)
