"""Retry with exponential backoff for idempotent-ish external calls (uploads)."""
import asyncio
from typing import Awaitable, Callable, TypeVar
import structlog
from ..errors import UploadExhausted

log = structlog.get_logger()

T = TypeVar("T")

RetryHook = Callable[[int, BaseException], Awaitable[None]]


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay slept after failed attempt ``attempt`` (1-based): base * 2^(attempt-1)."""
    return base_delay * (2 ** (attempt - 1))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    on_retry: RetryHook | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Execute an async operation, retrying failures with exponential backoff.

    Usage:
        url = await retry_with_backoff(
            lambda: storage.upload(data, key, "video/mp4"),
            max_attempts=3,
            base_delay=0.5,
            on_retry=log_retry,
        )

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total attempts including the first one
        base_delay: Seconds slept after the first failure; doubles each time
        on_retry: Awaited with (attempt, error) before each backoff sleep
        sleep: Sleep function (injectable for tests)

    Raises:
        UploadExhausted: After ``max_attempts`` failures
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            if attempt >= max_attempts:
                break

            delay = backoff_delay(attempt, base_delay)
            log.warning(
                "retry.scheduled",
                attempt=attempt,
                max_attempts=max_attempts,
                delay_s=delay,
                error=str(e),
            )
            if on_retry is not None:
                await on_retry(attempt, e)
            await sleep(delay)

    log.error("retry.exhausted", attempts=max_attempts, error=str(last_error))
    raise UploadExhausted(max_attempts, str(last_error)) from last_error
