"""Bounded async retry with exponential backoff."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from app.core.log import logger

__all__ = ("with_retry",)

T = TypeVar("T")


async def with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 1,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    retryable: tuple[type[BaseException], ...] = (Exception,),
    label: str = "",
    **kwargs: Any,
) -> T:
    """
    Await *fn* and retry it on *retryable* failures.

    The attempt count is always bounded: ``max_retries + 1`` calls at most,
    with the delay doubling between attempts and capped at *max_delay*.
    Non-retryable exceptions and cancellation propagate immediately.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    tag = label or getattr(fn, "__name__", "call")
    attempt = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except retryable as exc:
            if attempt >= max_retries:
                logger.warning(f"{tag}: giving up after {attempt + 1} attempt(s): {type(exc).__name__}: {exc}")
                raise
            delay = min(base_delay * (2**attempt), max_delay)
            attempt += 1
            logger.warning(
                f"{tag}: attempt {attempt}/{max_retries + 1} failed "
                f"({type(exc).__name__}: {exc}), retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
