"""Retry helper for bootstrap network calls with exponential backoff."""

from __future__ import annotations

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    httpx.ConnectError,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
    httpx.RemoteProtocolError,
    ConnectionError,
    TimeoutError,
)


def retry_on_network_error(
    func: Callable[[], T],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` and retry on connection-level failures.

    Only transport problems are retried; HTTP status errors and anything
    else propagate on the first occurrence.

    Args:
        func: Zero-argument callable to invoke
        max_retries: Total attempts before the last error is re-raised
        initial_delay: Delay before the second attempt, doubled afterwards
        sleep: Sleep function, replaceable in tests

    Example:
        catalog = retry_on_network_error(lambda: client.get(url).json())
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    delay = initial_delay
    for attempt in range(1, max_retries + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            if attempt == max_retries:
                logger.error("Network error after %d attempts: %s", max_retries, exc)
                raise
            logger.warning(
                "Network error (attempt %d/%d): %s. Retrying in %.1fs...",
                attempt,
                max_retries,
                exc,
                delay,
            )
            sleep(delay)
            delay *= 2

    raise RuntimeError("Retry loop completed without result or exception")
