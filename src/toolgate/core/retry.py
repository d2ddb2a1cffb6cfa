"""Caller-side retry with exponential backoff over tool envelopes.

The dispatcher never retries on its own; an agent loop (or any outer layer)
may wrap ``dispatcher.execute`` with :func:`retry_with_backoff` to reissue
calls that failed with a retryable kind.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from toolgate.core.errors import ErrorKind
from toolgate.tools.base import Mode

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from toolgate.engine.envelope import ErrorInfo, ToolResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Configuration for retry with backoff."""

    max_retries: int = 3
    base_delay: float = 0.3
    max_delay: float = 3.0
    multiplier: float = 2.0
    jitter: bool = True


def is_retryable(response: ToolResponse) -> bool:
    """Check if an envelope describes a failure that may be reissued."""
    return not response.ok and response.error.retryable


def _compute_delay(attempt: int, config: RetryConfig, error: ErrorInfo) -> float:
    """Compute backoff delay for a retry attempt."""
    if error.kind is ErrorKind.RATE_LIMIT and error.details:
        retry_after = error.details.get("retry_after")
        if isinstance(retry_after, int | float):
            return min(float(retry_after), config.max_delay)

    delay: float = config.base_delay * (config.multiplier**attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        delay *= random.uniform(0.5, 1.5)

    return delay


async def retry_with_backoff(
    fn: Callable[[], Awaitable[ToolResponse]],
    *,
    mode: Mode = Mode.TEXT,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, float, ErrorInfo], None] | None = None,
) -> ToolResponse:
    """Call fn, reissuing it while it returns a retryable error envelope.

    Voice mode never retries: its latency budget leaves no room for backoff.

    Args:
        fn: Zero-arg callable returning an awaitable envelope.
        mode: Calling agent's mode.
        config: Retry configuration. Uses defaults if None.
        on_retry: Optional callback(attempt, delay, error) before each retry.

    Returns:
        The first non-retryable envelope, or the last one once retries
        are exhausted.
    """
    cfg = config or RetryConfig()

    if mode is Mode.VOICE:
        return await fn()

    attempt = 0
    while True:
        response = await fn()
        if response.ok:
            if attempt > 0:
                logger.info("Call succeeded on attempt %d", attempt + 1)
            return response
        if not response.error.retryable or attempt >= cfg.max_retries:
            return response
        delay = _compute_delay(attempt, cfg, response.error)
        logger.info(
            "Retryable %s (attempt %d/%d), retrying in %.2fs",
            response.error.kind.value,
            attempt + 1,
            cfg.max_retries + 1,
            delay,
        )
        if on_retry is not None:
            on_retry(attempt + 1, delay, response.error)
        await asyncio.sleep(delay)
        attempt += 1
