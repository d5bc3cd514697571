import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff: float,
    timeout: float | None,
    retry_on: Tuple[Type[BaseException], ...] = (),
    operation: str = "call",
) -> T:
    """Await ``fn()`` with a timeout, retrying transient failures.

    Timeouts always count as transient. Backoff doubles after every failed
    attempt. The last failure is re-raised unchanged.
    """
    attempts = max(1, attempts)
    transient = (asyncio.TimeoutError,) + tuple(retry_on)
    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            if timeout is None:
                return await fn()
            return await asyncio.wait_for(fn(), timeout=timeout)
        except transient as e:
            if attempt == attempts:
                logger.warning("Retry budget exhausted", operation=operation, attempts=attempts, error=repr(e))
                raise
            logger.info("Transient failure, retrying", operation=operation, attempt=attempt, error=repr(e))
            if delay > 0:
                await asyncio.sleep(delay)
            delay *= 2
    raise RuntimeError("unreachable")  # pragma: no cover
