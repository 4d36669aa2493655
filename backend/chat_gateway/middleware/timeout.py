"""Timeout decorator for async endpoints.

Uses asyncio.wait_for to enforce the overall gateway deadline, covering
model round-trips and any tool round-trip. Timeout = error, partial
results are discarded.
"""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from loguru import logger

from chat_gateway.errors.problem_details import TimeoutHTTPException

P = ParamSpec("P")
T = TypeVar("T")


def with_timeout(
    seconds: float,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator to add timeout to an async callable.

    Args:
        seconds: Timeout in seconds. If exceeded, raises TimeoutHTTPException.

    Returns:
        Decorator that wraps the callable with asyncio.wait_for.

    Example:
        @with_timeout(120.0)
        async def complete(body: ChatRequestBody) -> ChatResponseBody:
            ...
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await asyncio.wait_for(
                    func(*args, **kwargs),
                    timeout=seconds,
                )
            except TimeoutError:
                logger.warning(f"{func.__name__} timed out after {seconds}s")
                raise TimeoutHTTPException(
                    timeout_seconds=seconds,
                    detail=f"Request timed out after {int(seconds)} seconds. "
                    f"Consider disabling web search or reducing maxTokens.",
                )

        return wrapper

    return decorator
