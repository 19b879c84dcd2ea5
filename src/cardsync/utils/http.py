"""httpx client factory and a small retry wrapper for WebDAV requests.

Intended use:
- One place for timeouts, retries, backoff and User-Agent.
- Conditional PUT helper using ETags (If-Match).

Notes:
- PROPFIND and REPORT are read-only in CardDAV and retried like GET.
"""

from __future__ import annotations

import logging
import os
import random
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from time import sleep

import httpx

log = logging.getLogger(__name__)

__all__ = [
    "RetryConfig",
    "create_client",
    "put_with_etag",
    "request_with_retries",
]


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 5
    backoff_initial_sec: float = 1.0
    backoff_factor: float = 2.0
    jitter_frac: float = 0.2  # +/- 20%
    status_forcelist: tuple[int, ...] = (429, 500, 502, 503, 504)
    methods: tuple[str, ...] = ("GET", "HEAD", "OPTIONS", "PROPFIND", "REPORT", "PUT")


def _user_agent() -> str:
    return "cardsync/0.1"


def create_client(
    base_url: str,
    auth: httpx.Auth | None = None,
    timeout: float = 30.0,
    headers: Mapping[str, str] | None = None,
    verify: bool | str = True,
) -> httpx.Client:
    """Create a configured httpx client bound to the DAV server."""
    if verify is False and os.getenv("CARDSYNC_ENVIRONMENT") == "production":
        raise ValueError(
            "SSL certificate verification cannot be disabled in production environment. "
            "Set CARDSYNC_ENVIRONMENT to 'development' or 'test' to allow insecure connections."
        )
    if verify is False:
        log.warning("ssl-verification-disabled base_url=%s", base_url)

    base_headers: MutableMapping[str, str] = {"User-Agent": _user_agent()}
    if headers:
        base_headers.update(headers)
    return httpx.Client(
        base_url=base_url,
        auth=auth,
        timeout=timeout,
        headers=base_headers,
        verify=verify,
        limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
    )


def _should_retry(
    method: str,
    status_code: int | None,
    exc: Exception | None,
    retry: RetryConfig,
) -> bool:
    if method.upper() not in retry.methods:
        return False
    if exc is not None:
        # Network/transport errors are retryable
        return True
    if status_code is None:
        return False
    return status_code in retry.status_forcelist


def _backoff_delay(attempt: int, retry: RetryConfig) -> float:
    # attempt starts at 1
    base = retry.backoff_initial_sec * (retry.backoff_factor ** (attempt - 1))
    jitter = base * retry.jitter_frac
    return max(0.0, base + random.uniform(-jitter, jitter))


def request_with_retries(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    data: str | bytes | None = None,
    retry: RetryConfig | None = None,
    expected: Iterable[int] = (200, 201, 204, 207),  # 207 for WebDAV multi-status
) -> httpx.Response:
    """Perform an HTTP request, retrying transient failures with backoff.

    Returns the last response when retries are exhausted; re-raises the last
    transport error if no response was ever received.
    """
    cfg = retry or RetryConfig()
    ok = tuple(expected)
    body = data.encode("utf-8") if isinstance(data, str) else data
    last_exc: httpx.HTTPError | None = None
    resp: httpx.Response | None = None

    attempts = max(1, cfg.max_retries)
    for attempt in range(1, attempts + 1):
        try:
            resp = client.request(method, url, headers=headers, content=body)
            if resp.status_code in ok or not _should_retry(method, resp.status_code, None, cfg):
                return resp
            log.info("http-retry method=%s url=%s status=%s attempt=%d", method, url, resp.status_code, attempt)
        except httpx.HTTPError as exc:
            last_exc = exc
            if not _should_retry(method, None, exc, cfg):
                raise
            log.info("http-retry method=%s url=%s err=%s attempt=%d", method, url, exc, attempt)

        if attempt < attempts:
            sleep(_backoff_delay(attempt, cfg))

    if resp is not None:
        return resp
    assert last_exc is not None
    raise last_exc


def put_with_etag(
    client: httpx.Client,
    url: str,
    body: str | bytes,
    *,
    content_type: str,
    etag: str | None = None,
    retry: RetryConfig | None = None,
) -> httpx.Response:
    """PUT, guarded by If-Match when the current ETag is known."""
    headers = {"Content-Type": content_type}
    if etag:
        headers["If-Match"] = etag

    return request_with_retries(
        client,
        "PUT",
        url,
        headers=headers,
        data=body,
        retry=retry,
        expected=(200, 201, 204),
    )
