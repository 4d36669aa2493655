"""Shared HTTP client construction for providers, search and page fetches."""

import httpx
from httpx_retries import Retry, RetryTransport
from loguru import logger


def create_http_client(
    base_url: str = "",
    timeout: float = 60.0,
    max_retries: int = 3,
    backoff_factor: float = 0.5,
    headers: dict[str, str] | None = None,
    follow_redirects: bool = False,
) -> httpx.AsyncClient:
    """Create an async HTTP client with the gateway's retry policy.

    Clients carry no per-request state, so one instance per upstream is
    shared read-only by all requests. Credentials are attached per request
    by the adapters, never stored on the client.

    Args:
        base_url: API base URL
        timeout: Request timeout in seconds
        max_retries: Maximum retry attempts for idempotent methods
        backoff_factor: Exponential backoff factor
        headers: Default headers
        follow_redirects: Follow 3xx responses (page fetches)

    Returns:
        Configured httpx.AsyncClient
    """
    # POST is not in the retryable methods, so provider calls are never replayed
    retry = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
    )

    client = httpx.AsyncClient(
        base_url=base_url,
        transport=RetryTransport(retry=retry),
        timeout=httpx.Timeout(timeout, connect=min(10.0, timeout)),
        headers=headers or {},
        follow_redirects=follow_redirects,
    )
    logger.info(f"Initialized HTTP client for {base_url or 'arbitrary hosts'}")
    return client
