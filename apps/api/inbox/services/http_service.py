"""HTTP helpers with retry/backoff for provider and broker calls."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

from inbox.core.errors import RecoverableError, UnexpectedError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}
# Statuses that mean "try the whole sync again later" once retries are exhausted
RECOVERABLE_STATUSES = DEFAULT_RETRY_STATUSES | {401, 403, 408}


def _backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay = delay + random.uniform(0, delay / 2)
    return delay


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """Execute an HTTP request with exponential backoff retries."""
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES

    for attempt in range(max_attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= max_attempts - 1:
                raise
            delay = _backoff_delay(attempt, base_delay, max_delay)
            logger.warning("HTTP request failed, retrying", exc_info=exc)
            if delay:
                await asyncio.sleep(delay)
            continue

        if response.status_code in statuses and attempt < max_attempts - 1:
            delay = _backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "HTTP request returned %s, retrying", response.status_code
            )
            if delay:
                await asyncio.sleep(delay)
            continue

        return response

    return response


async def send_provider_request(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    provider: str,
    action: str,
    allowed_statuses: set[int] | None = None,
    **retry_kwargs,
) -> httpx.Response:
    """
    Run a provider request with retries and classify failures.

    Transport errors and throttling/auth statuses raise RecoverableError so the
    job is retried; any other error status raises UnexpectedError. Statuses in
    ``allowed_statuses`` are returned to the caller untouched.
    """
    try:
        response = await request_with_retries(request_fn, **retry_kwargs)
    except httpx.RequestError as exc:
        raise RecoverableError(f"Failed to {action} on {provider}: {exc}") from exc

    if allowed_statuses and response.status_code in allowed_statuses:
        return response
    if response.status_code in RECOVERABLE_STATUSES:
        raise RecoverableError(
            f"Failed to {action} on {provider}: HTTP {response.status_code}"
        )
    if response.status_code >= 400:
        raise UnexpectedError(
            f"Failed to {action} on {provider}: HTTP {response.status_code} {response.text[:200]}"
        )
    return response
