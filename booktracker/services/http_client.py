import asyncio
import logging
from typing import Optional

import httpx

from booktracker.config import settings

logger = logging.getLogger(__name__)

# HTTP/2 needs the optional 'h2' package
try:
    import h2  # type: ignore  # noqa: F401
    _HTTP2_AVAILABLE = True
except ImportError:
    _HTTP2_AVAILABLE = False
    logger.debug("HTTP/2 disabled: 'h2' package is not installed.")


class OptimizedHTTPClient:
    """Pooled async HTTP client with retry for idempotent reads."""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        limits = httpx.Limits(
            max_keepalive_connections=10,
            max_connections=20,
            keepalive_expiry=30.0
        )

        total = float(timeout if timeout is not None else settings.http_timeout)
        timeout_config = httpx.Timeout(
            timeout=total,
            connect=min(5.0, total),
            read=total,
            write=total
        )

        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=timeout_config,
            follow_redirects=True,
            http2=_HTTP2_AVAILABLE and transport is None,
            transport=transport,
        )

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        return await self._client.request(method, url, **kwargs)

    async def request_with_retry(self, method: str, url: str, retries: Optional[int] = None,
                                 backoff: float = 0.5, **kwargs) -> httpx.Response:
        """Send a request, retrying transport errors with exponential backoff.

        The last ``httpx.RequestError`` is re-raised once retries are exhausted.
        """
        attempts = max(1, retries if retries is not None else settings.http_retries)
        for attempt in range(attempts):
            try:
                return await self.request(method, url, **kwargs)
            except httpx.RequestError as e:
                if attempt < attempts - 1:
                    wait_time = backoff * (2 ** attempt)
                    logger.warning(f"{method} {url} failed ({e}); retrying in {wait_time:.1f}s")
                    await asyncio.sleep(wait_time)
                    continue
                raise
        raise RuntimeError("unreachable")

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# Global HTTP client instance
_global_client: Optional[OptimizedHTTPClient] = None


async def get_http_client() -> OptimizedHTTPClient:
    """Return the shared client, creating it on first use."""
    global _global_client
    if _global_client is None:
        _global_client = OptimizedHTTPClient()
    return _global_client


async def cleanup_http_client():
    """Close and forget the shared client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
