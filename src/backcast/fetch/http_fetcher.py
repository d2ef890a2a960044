"""Conditional GET for polled resources.

A request is retried on timeouts, 5xx and 429. Every wait between attempts
is capped at ``max_retry_wait`` seconds because the single poll worker sits
idle for the whole wait; a 429 asking for longer than the cap is a failed
fetch, left for the next sweep to retry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from enum import StrEnum
from http import HTTPStatus

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from backcast.errors import FetchError


class HTTPHeader(StrEnum):
    CONTENT_TYPE = "Content-Type"
    ETAG = "ETag"
    IF_NONE_MATCH = "If-None-Match"
    RETRY_AFTER = "Retry-After"


@dataclass(frozen=True, slots=True)
class FetchResult:
    status_code: int
    content: str | None
    etag: str | None
    is_modified: bool
    content_type: str | None = None


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_RETRY_WAIT = 60.0
_BACKOFF_MIN = 1


class _TransientResponse(Exception):
    """A 5xx or 429 response worth another attempt."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def parse_retry_after(header: str) -> float | None:
    """Seconds to wait according to a Retry-After value, or None if unparseable."""
    try:
        return max(0.0, float(header))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(header)
    except (ValueError, TypeError):
        return None
    return max(0.0, retry_at.timestamp() - time.time())


class HttpFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_retry_wait: float = DEFAULT_MAX_RETRY_WAIT,
    ) -> None:
        if max_attempts <= 0:
            msg = "max_attempts must be positive"
            raise ValueError(msg)
        if max_retry_wait <= 0:
            msg = "max_retry_wait must be positive"
            raise ValueError(msg)
        self._client = client
        self._max_attempts = max_attempts
        self._max_retry_wait = max_retry_wait
        self._backoff = wait_exponential(multiplier=_BACKOFF_MIN, max=max_retry_wait)

    async def fetch(self, url: str, *, etag: str | None = None) -> FetchResult:
        headers: dict[str, str] = {}
        if etag:
            headers[HTTPHeader.IF_NONE_MATCH] = etag

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type((httpx.TimeoutException, _TransientResponse)),
                wait=self._wait,
                stop=stop_after_attempt(self._max_attempts),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.get(url, headers=headers)
                    self._check_transient(url, response)
        except _TransientResponse as exc:
            raise FetchError(url, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, f"{type(exc).__name__}: {exc}") from exc

        return self._to_result(url, response)

    def _check_transient(self, url: str, response: httpx.Response) -> None:
        if response.status_code == HTTPStatus.TOO_MANY_REQUESTS:
            delay = self._retry_after(response)
            if delay > self._max_retry_wait:
                raise FetchError(url, f"HTTP 429, server asked to wait {delay:.0f}s")
            raise _TransientResponse(response)
        if response.status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
            raise _TransientResponse(response)

    def _retry_after(self, response: httpx.Response) -> float:
        header = response.headers.get(HTTPHeader.RETRY_AFTER)
        delay = parse_retry_after(header) if header is not None else None
        # a 429 without a usable Retry-After waits the full cap
        return self._max_retry_wait if delay is None else delay

    def _wait(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        if isinstance(exc, _TransientResponse) and exc.response.status_code == HTTPStatus.TOO_MANY_REQUESTS:
            return min(self._retry_after(exc.response), self._max_retry_wait)
        return min(float(self._backoff(retry_state)), self._max_retry_wait)

    def _to_result(self, url: str, response: httpx.Response) -> FetchResult:
        if response.status_code == HTTPStatus.NOT_MODIFIED:
            return FetchResult(
                status_code=HTTPStatus.NOT_MODIFIED,
                content=None,
                etag=response.headers.get(HTTPHeader.ETAG),
                is_modified=False,
            )
        if response.status_code >= HTTPStatus.BAD_REQUEST:
            raise FetchError(url, f"HTTP {response.status_code}")
        return FetchResult(
            status_code=response.status_code,
            content=response.text,
            etag=response.headers.get(HTTPHeader.ETAG),
            is_modified=True,
            content_type=response.headers.get(HTTPHeader.CONTENT_TYPE),
        )
