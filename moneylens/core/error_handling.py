"""Consistent failure reporting for allocation engine operations."""

from __future__ import annotations

import functools
import logging
from typing import Callable

import httpx
from pydantic import ValidationError

from moneylens.core.resolvers import ResolverError
from moneylens.core.store_client import StoreError
from moneylens.models.results import OperationResult

logger = logging.getLogger("moneylens")

# Exceptions that mean a store call failed, as opposed to a bug in our code.
# Rows the models cannot parse surface as ValidationError.
STORE_FAILURES = (StoreError, httpx.HTTPError, ValidationError)


def describe_failure(e: Exception) -> str:
    """User-friendly message for an exception raised by a store call."""
    if isinstance(e, StoreError):
        return f"Store error: {e.detail}"
    if isinstance(e, ResolverError):
        return str(e)
    if isinstance(e, httpx.ConnectError):
        return "Cannot connect to the store. Check your network connection."
    if isinstance(e, httpx.TimeoutException):
        return "Request to the store timed out. Please try again."
    if isinstance(e, ValidationError):
        return f"Invalid data: {e.error_count()} validation error(s). Check your input."
    return f"Unexpected error: {type(e).__name__}: {e}"


def report_failures(fn: Callable) -> Callable:
    """Decorator that turns failures into a failed :class:`OperationResult`.

    Engine operations report business failures instead of raising. A
    ``ValueError`` means the caller passed invalid arguments and is re-raised.
    """

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except ValidationError as e:
            # pydantic's ValidationError subclasses ValueError
            return OperationResult(success=False, error=describe_failure(e))
        except ValueError:
            raise
        except (StoreError, ResolverError, httpx.ConnectError, httpx.TimeoutException) as e:
            logger.error("%s failed: %s", fn.__name__, e)
            return OperationResult(success=False, error=describe_failure(e))
        except Exception as e:
            logger.exception("Unexpected error in %s", fn.__name__)
            return OperationResult(success=False, error=describe_failure(e))

    return wrapper
