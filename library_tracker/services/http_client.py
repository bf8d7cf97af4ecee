import logging
from typing import Optional

import httpx

from library_tracker.config import settings

logger = logging.getLogger(__name__)


class HTTPClient:
    """Pooled async HTTP client shared by the outbound integrations."""

    def __init__(self, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        # Connection limits
        limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        )

        # Timeouts
        timeout = httpx.Timeout(
            timeout if timeout is not None else settings.google_books_timeout,
            connect=5.0
        )

        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=timeout,
            follow_redirects=True,
            transport=transport
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Async GET through the shared connection pool."""
        return await self._client.get(url, **kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# Global HTTP client instance
_global_client: Optional[HTTPClient] = None


async def get_http_client() -> HTTPClient:
    """Return the global HTTP client, creating it on first use."""
    global _global_client
    if _global_client is None:
        _global_client = HTTPClient()
    return _global_client


async def cleanup_http_client() -> None:
    """Close the global HTTP client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
        logger.debug("Shared HTTP client closed")
