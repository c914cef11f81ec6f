"""Generic HTTP Client for Microsoft Graph.

This module provides a reusable HTTP client that handles the common concerns
of Graph API communication:

    - OAuth2 authentication via TokenManager
    - Automatic token refresh on 401 responses
    - Throttling (429) handling that honours Retry-After
    - Exponential backoff on 5xx and network errors
    - OData pagination by following ``@odata.nextLink``
    - Connection pooling via a shared aiohttp session
    - Typed exceptions for every failure class

Design Philosophy:
    This client knows HOW to talk to Graph, but not WHAT to fetch. It has no
    knowledge of lists, items or subscriptions; that belongs in the adapters
    that compose this client.

Usage:
    async with GraphClient(token_manager) as client:
        data = await client.get("/sites/{site}/lists/{list}")

        async for page in client.iterate_pages("/subscriptions"):
            for item in page:
                process(item)
"""
import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import aiohttp

from .auth import TokenManager
from .exceptions import (
    RateLimitError,
    ServerError,
    SourceAuthError,
    SourceFetchError,
    TokenInvalidError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"

# Internal marker code for a 401 that may be cured by a fresh token
_TOKEN_EXPIRED = "TOKEN_EXPIRED"


class GraphClient:
    """Async HTTP client for Microsoft Graph.

    Must be used as an async context manager so the session is closed:

        async with GraphClient(token_manager) as client:
            data = await client.get("/subscriptions")

    Endpoints may be paths relative to ``base_url`` or absolute URLs (Graph
    pagination and delta links are absolute).

    Attributes:
        token_manager: TokenManager instance for OAuth2 authentication
        base_url: Base URL for API requests
        max_retries: Attempts per request before giving up
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: str = DEFAULT_BASE_URL,
        max_retries: int = 3,
        timeout: float = 60.0,
    ):
        self.token_manager = token_manager
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "GraphClient":
        """Enter async context: create the HTTP session."""
        return await self.open()

    async def open(self) -> "GraphClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(limit=10, limit_per_host=10),
                timeout=aiohttp.ClientTimeout(total=self.timeout, connect=10),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _get_auth_headers(self) -> dict[str, str]:
        token = await self.token_manager.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a single HTTP request (no retry logic).

        Returns:
            Parsed JSON response, or ``{}`` for an empty (204) response

        Raises:
            SourceError subclass: If the response status is not 2xx or the
                request fails at the network level
            RuntimeError: If called outside of async context manager
        """
        if not self._session:
            raise RuntimeError(
                "GraphClient must be used as async context manager: "
                "async with GraphClient(...) as client:"
            )

        url = self._url(endpoint)

        try:
            headers = await self._get_auth_headers()

            async with self._session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )

                if response.status == 204 or response.content_length == 0:
                    return {}
                return await response.json()

        except asyncio.TimeoutError as e:
            raise SourceFetchError(
                f"Request to {endpoint} timed out",
                endpoint=endpoint,
                method=method,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise SourceFetchError(
                f"Network error during {method} {endpoint}: {e}",
                endpoint=endpoint,
                method=method,
                cause=e,
            )

    def _create_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> Exception:
        """Create the exception matching a failed response."""
        if status == 401:
            return SourceAuthError(
                "Access token expired or invalid",
                code=_TOKEN_EXPIRED,
                details={"endpoint": endpoint},
            )

        if status == 403:
            return SourceAuthError(
                f"Access denied for {method} {endpoint}",
                details={"endpoint": endpoint, "response": response_body[:200]},
            )

        if status == 410:
            return TokenInvalidError(
                f"Delta link for {endpoint} is no longer valid",
                details={"endpoint": endpoint},
            )

        if status == 429:
            try:
                wait = float(retry_after) if retry_after else None
            except ValueError:
                wait = None
            return RateLimitError(
                f"Throttled on {method} {endpoint}",
                retry_after=wait,
                endpoint=endpoint,
                response_body=response_body,
                method=method,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                response_body=response_body,
                method=method,
            )

        return SourceFetchError(
            f"{method} {endpoint} failed with HTTP {status}",
            status_code=status,
            endpoint=endpoint,
            response_body=response_body,
            method=method,
        )

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make an HTTP request with automatic retry.

            - 401 Unauthorized: Invalidate token, refresh, retry
            - 429 Throttled: Wait for Retry-After, retry
            - 5xx / network errors: Exponential backoff retry
            - Anything else: raise immediately

        Raises:
            SourceError subclass: If the request fails after all retries
        """
        last_error: Optional[Exception] = None
        backoff_delay = 1.0

        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._request(method, endpoint, params, json_body)

            except SourceAuthError as e:
                if e.code != _TOKEN_EXPIRED:
                    raise
                last_error = e
                logger.warning(f"Token rejected, refreshing (attempt {attempt})")
                self.token_manager.invalidate()
                continue

            except RateLimitError as e:
                last_error = e
                if attempt >= self.max_retries:
                    raise
                logger.warning(
                    f"Throttled, waiting {e.retry_after}s (attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(e.retry_after)
                continue

            except SourceFetchError as e:
                if not e.recoverable or attempt >= self.max_retries:
                    raise
                last_error = e
                logger.warning(
                    f"Request failed: {e}. Retrying in {backoff_delay}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(backoff_delay)
                backoff_delay = min(backoff_delay * 2, 60.0)
                continue

        if last_error:
            raise last_error

        raise SourceFetchError(
            "Request failed after all retries",
            endpoint=endpoint,
            method=method,
        )

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def get(self, endpoint: str, params: Optional[dict] = None) -> dict[str, Any]:
        return await self._request_with_retry("GET", endpoint, params=params)

    async def post(self, endpoint: str, json_body: dict) -> dict[str, Any]:
        return await self._request_with_retry("POST", endpoint, json_body=json_body)

    async def patch(self, endpoint: str, json_body: dict) -> dict[str, Any]:
        return await self._request_with_retry("PATCH", endpoint, json_body=json_body)

    async def delete(self, endpoint: str) -> dict[str, Any]:
        return await self._request_with_retry("DELETE", endpoint)

    # ----------------------------------------
    # Pagination
    # ----------------------------------------

    async def iterate_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> AsyncIterator[list[dict]]:
        """Iterate an OData collection, following ``@odata.nextLink``.

        Yields:
            The ``value`` list of each page
        """
        data = await self.get(endpoint, params=params)
        pages = 1
        while True:
            items = data.get("value", [])
            if items:
                yield items

            next_link = data.get("@odata.nextLink")
            if not next_link:
                break
            # The next link already carries the query string
            data = await self.get(next_link)
            pages += 1

        logger.debug(f"Pagination of {endpoint} complete after {pages} pages")

    async def fetch_all(self, endpoint: str, params: Optional[dict] = None) -> list[dict]:
        """Collect every page of an OData collection into a single list."""
        all_items = []
        async for page in self.iterate_pages(endpoint, params):
            all_items.extend(page)
        return all_items
