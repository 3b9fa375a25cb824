"""Bounded fixed-backoff retry for outbound HTTP calls."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from app.utils.log_sanitizer import sanitize_log_extra

logger = logging.getLogger(__name__)

# Rate limiting and gateway hiccups; every other status is permanent
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class TransientHTTPStatusError(httpx.HTTPStatusError):
    """HTTP status that is worth retrying."""


def is_transient_error(exc: BaseException) -> bool:
    """Connection resets, DNS failures, timeouts and transient statuses."""
    if isinstance(exc, TransientHTTPStatusError):
        return True
    return isinstance(exc, httpx.TransportError)


def raise_for_status(response: httpx.Response) -> httpx.Response:
    """Like `Response.raise_for_status` but tags retryable statuses."""
    if response.status_code in TRANSIENT_STATUS_CODES:
        raise TransientHTTPStatusError(
            f"Transient HTTP {response.status_code} for {response.request.url}",
            request=response.request,
            response=response,
        )
    response.raise_for_status()
    return response


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int,
    backoff_seconds: float,
    **kwargs: Any,
) -> httpx.Response:
    """
    Issue one request, retrying transient failures with a fixed backoff

    Non-transient HTTP errors raise on the first attempt. When every attempt
    fails transiently the last exception is re-raised.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_fixed(backoff_seconds),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_retry(method, url),
        reraise=True,
    ):
        with attempt:
            response = await client.request(method, url, **kwargs)
            return raise_for_status(response)

    raise RuntimeError("unreachable: retry loop exited without result")


def _log_retry(method: str, url: str):
    def _before_sleep(retry_state) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Transient HTTP failure, retrying",
            extra=sanitize_log_extra(
                method=method,
                url=url,
                attempt=retry_state.attempt_number,
                error=str(error),
            ),
        )

    return _before_sleep
