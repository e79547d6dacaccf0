"""
Retry utilities with exponential backoff for the price feed's HTTP calls.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Args:
        max_retries: Retry attempts after the first call (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Delay cap in seconds
        exponential_base: Backoff growth (2.0 = 1s, 2s, 4s, ...)
        jitter: Randomize delays by up to 25%
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)
    retryable_status_codes: frozenset = field(
        default_factory=lambda: frozenset({408, 429, 500, 502, 503, 504})
    )

    @property
    def attempts(self) -> int:
        return self.max_retries + 1


HTTP_RETRY_CONFIG = RetryConfig()


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff delay before retry number `attempt` (0-based)"""
    delay = min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)
    if config.jitter:
        delay += random.uniform(-delay * 0.25, delay * 0.25)
    return max(0.1, delay)


async def retry_http_request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    config: Optional[RetryConfig] = None,
    **kwargs,
) -> aiohttp.ClientResponse:
    """
    session.request() with retry on transport errors and retryable status codes.

    The last response is returned even if its status is retryable; callers
    check resp.status themselves.
    """
    config = config or HTTP_RETRY_CONFIG

    for attempt in range(config.attempts):
        last_attempt = attempt == config.max_retries
        try:
            resp = await session.request(method, url, **kwargs)
        except config.retryable_exceptions as e:
            if last_attempt:
                logger.error(f"[Retry] HTTP {method} {url} failed after {config.attempts} attempts: {e}")
                raise
            delay = calculate_delay(attempt, config)
            logger.warning(f"[Retry] HTTP {method} {url} failed: {type(e).__name__}: {e}. Retrying in {delay:.1f}s...")
            await asyncio.sleep(delay)
            continue

        if resp.status not in config.retryable_status_codes or last_attempt:
            return resp

        delay = calculate_delay(attempt, config)
        logger.warning(f"[Retry] HTTP {method} {url} returned {resp.status}. Retrying in {delay:.1f}s...")
        resp.release()
        await asyncio.sleep(delay)
