"""
CaproneIter Retry — Rate-Limit Backoff
======================================

Every page fetch runs through fetch_with_retry (or its async twin). Only
429 Too Many Requests is retried; anything else propagates on the first
attempt. A fetch makes at most max_retries + 1 attempts and the error of
the final attempt is the one the caller sees.

The attempt counter lives inside one call, so each page fetch starts
from zero.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from .exceptions import ResponseError
from .transport import ResponseEnvelope

logger = logging.getLogger(__name__)

RATE_LIMITED = 429


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded fixed-delay retry on rate limiting.

    Args:
        max_retries: Retries after the first attempt (0 = single attempt)
        wait_ms: Delay between attempts in milliseconds
    """

    max_retries: int = 3
    wait_ms: int = 5000

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.wait_ms < 0:
            raise ValueError("wait_ms must be >= 0")

    @property
    def delay(self) -> float:
        """Delay between attempts in seconds."""
        return self.wait_ms / 1000

    def should_retry(self, error: ResponseError, attempt: int) -> bool:
        """
        Decide whether a failed attempt is retried.

        Args:
            error: Error raised by the attempt
            attempt: Number of retries already performed for this fetch
        """
        return error.status_code == RATE_LIMITED and attempt < self.max_retries


def _raise_if_rate_limited(envelope: ResponseEnvelope) -> ResponseEnvelope:
    # A caller may ignore 429; the envelope still means "try again".
    if envelope.status_code == RATE_LIMITED:
        raise ResponseError(envelope.status_code, envelope.body, envelope.headers)
    return envelope


def fetch_with_retry(
    request_fn: Callable[[], ResponseEnvelope],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep
) -> ResponseEnvelope:
    """
    Run request_fn until it succeeds, fails with a non-429 error, or the
    retry budget is spent.

    Args:
        request_fn: Zero-argument callable performing one attempt
        policy: Retry bounds and delay
        sleep: Blocking sleep, injectable for tests

    Returns:
        The first successful ResponseEnvelope
    """
    attempt = 0
    while True:
        try:
            return _raise_if_rate_limited(request_fn())
        except ResponseError as err:
            if not policy.should_retry(err, attempt):
                raise
            attempt += 1
            logger.warning(
                "Rate limited (429), retry %d/%d in %dms",
                attempt, policy.max_retries, policy.wait_ms
            )
            sleep(policy.delay)


async def async_fetch_with_retry(
    request_fn: Callable[[], Awaitable[ResponseEnvelope]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> ResponseEnvelope:
    """Async variant of fetch_with_retry; the backoff does not block the loop."""
    attempt = 0
    while True:
        try:
            return _raise_if_rate_limited(await request_fn())
        except ResponseError as err:
            if not policy.should_retry(err, attempt):
                raise
            attempt += 1
            logger.warning(
                "Rate limited (429), retry %d/%d in %dms",
                attempt, policy.max_retries, policy.wait_ms
            )
            await sleep(policy.delay)
