"""Retry logic with exponential backoff for transient streaming failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import StorageUnavailable, TransientNetworkError, VerifierUnavailable
from .metrics import player_retries_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryConfig:
    """Retry configuration."""

    def __init__(
        self,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        max_backoff: float = 60.0,
        backoff_multiplier: float = 2.0,
    ) -> None:
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier


def retry_reason(exc: TransientNetworkError) -> str:
    if isinstance(exc, VerifierUnavailable):
        return "verifier_unavailable"
    if isinstance(exc, StorageUnavailable):
        return "storage_unavailable"
    return "network"


async def execute_with_retry(  # noqa: UP047
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
    on_retry: Callable[[TransientNetworkError, int], None] | None = None,
) -> T:
    """
    Execute function with retry and exponential backoff.

    Only ``TransientNetworkError`` is retried; anything else propagates at once.
    After ``max_retries`` retries the last transient error is re-raised.
    """
    if config is None:
        config = RetryConfig()

    backoff = config.initial_backoff

    for attempt in range(config.max_retries + 1):
        try:
            return await func()
        except TransientNetworkError as e:
            if attempt >= config.max_retries:
                logger.error("Giving up after %d attempts: %s", attempt + 1, e)
                raise
            # a server-provided Retry-After wins over our own schedule, within the cap
            delay = min(e.retry_after if e.retry_after is not None else backoff, config.max_backoff)
            player_retries_total.labels(reason=retry_reason(e)).inc()
            logger.warning(
                "Transient error (attempt %d/%d): %s, retrying in %.1f seconds",
                attempt + 1,
                config.max_retries + 1,
                e,
                delay,
            )
            if on_retry is not None:
                on_retry(e, attempt + 1)
            await sleep(delay)
            backoff = min(backoff * config.backoff_multiplier, config.max_backoff)

    raise AssertionError("unreachable")
