"""
Async HTTP Client Configuration

Provides a shared httpx.AsyncClient with connection pooling, timeout
presets for each vehicle data provider and a small retry helper.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


# Timeout configurations (in seconds)
class Timeouts:
    """Timeout presets for external services."""
    AUTO_DEV = 10.0     # VIN decode, listings
    MARKETCHECK = 10.0  # sales statistics
    FEMA = 12.0         # OpenFEMA declarations (large payloads)
    NHTSA = 8.0         # recalls


# Retry configuration
class RetryConfig:
    """Retry settings - minimal to avoid cumulative delays."""
    MAX_RETRIES = 2
    INITIAL_BACKOFF = 0.5  # seconds
    MAX_BACKOFF = 1.5      # seconds

    # Retryable status codes
    RETRYABLE_CODES = {429, 500, 502, 503, 504}


# Shared client instance (lazily initialized)
_client: Optional[httpx.AsyncClient] = None


async def get_client() -> httpx.AsyncClient:
    """Get the shared async HTTP client."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, connect=5.0),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
            follow_redirects=True,
        )
    return _client


async def close_client():
    """Close the shared client (call on app shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def get_timeout(service: str) -> httpx.Timeout:
    """Get timeout configuration for a service."""
    timeouts = {
        "auto_dev": Timeouts.AUTO_DEV,
        "marketcheck": Timeouts.MARKETCHECK,
        "fema": Timeouts.FEMA,
        "nhtsa": Timeouts.NHTSA,
    }
    seconds = timeouts.get(service.lower(), 10.0)
    return httpx.Timeout(seconds, connect=5.0)


def is_retryable_error(status_code: int) -> bool:
    """Check if an HTTP error is retryable."""
    return status_code in RetryConfig.RETRYABLE_CODES


async def get_with_retry(url: str, service: str, **kwargs: Any) -> httpx.Response:
    """GET *url* on the shared client, retrying timeouts and retryable codes.

    Returns the last response received, whatever its status. Transport
    errors other than timeouts propagate immediately; a timeout on the final
    attempt propagates as ``httpx.TimeoutException``.
    """
    client = await get_client()
    timeout = get_timeout(service)

    for attempt in range(RetryConfig.MAX_RETRIES + 1):
        try:
            response = await client.get(url, timeout=timeout, **kwargs)
        except httpx.TimeoutException:
            logger.warning("%s timeout (attempt %d) for %s", service, attempt + 1, url)
            if attempt >= RetryConfig.MAX_RETRIES:
                raise
        else:
            if not is_retryable_error(response.status_code) or attempt >= RetryConfig.MAX_RETRIES:
                return response
            logger.warning(
                "%s returned retryable HTTP %d (attempt %d)",
                service,
                response.status_code,
                attempt + 1,
            )

        backoff = min(RetryConfig.INITIAL_BACKOFF * (2 ** attempt), RetryConfig.MAX_BACKOFF)
        await asyncio.sleep(backoff)

    # Loop always returns or raises; kept for type checkers.
    raise httpx.TimeoutException(f"{service} retries exhausted")
