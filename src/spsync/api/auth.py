"""OAuth2 Token Management for Microsoft Graph.

This module provides OAuth2 token management for the Graph API using the
Azure AD (Entra ID) client credentials grant flow.

Features:
    - Automatic token caching with dynamic expiration buffer (10% of TTL, max 5min)
    - Concurrency-safe token refresh using asyncio.Lock
    - Exponential backoff between attempts (1s, 2s)
    - Transparent token refresh on 401 responses (via GraphClient)

Security Notes:
    - Tokens are cached in memory only (never persisted to disk)
    - Token ID in log output uses SHA-256 hash (first 8 chars) - never the actual token

Example:
    >>> manager = TokenManager(tenant_id, client_id, client_secret)
    >>> token = await manager.get_token()
"""
import asyncio
import hashlib
import logging
import random
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .exceptions import ConfigurationError, SourceAuthError, SourceFetchError

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
DEFAULT_SCOPE = "https://graph.microsoft.com/.default"


@dataclass
class CachedToken:
    """Container for a cached OAuth2 access token.

    Attributes:
        access_token: The OAuth2 bearer token string.
        expires_at: Unix timestamp when the token expires.
        expires_in: Original TTL in seconds (for dynamic buffer calculation).
    """
    access_token: str
    expires_at: float
    expires_in: int = 3599

    MAX_BUFFER_SECONDS = 300
    MIN_BUFFER_SECONDS = 30

    @property
    def token_id(self) -> str:
        """Safe identifier for logging (SHA-256 hash, first 8 chars)."""
        return hashlib.sha256(self.access_token.encode()).hexdigest()[:8]

    @property
    def _buffer_seconds(self) -> float:
        """10% of TTL clamped to [MIN, MAX], plus ±10% jitter."""
        buffer = max(self.MIN_BUFFER_SECONDS, min(self.expires_in * 0.1, self.MAX_BUFFER_SECONDS))
        return buffer + buffer * random.uniform(-0.1, 0.1)

    @property
    def is_expired(self) -> bool:
        return time.time() >= (self.expires_at - self._buffer_seconds)

    @property
    def time_remaining(self) -> float:
        return max(0, self.expires_at - time.time())


class TokenManager:
    """OAuth2 client-credentials token manager with automatic refresh.

    Refreshes are serialized with an asyncio lock so concurrent reconcile
    passes never fetch more than one token at a time.

    Example:
        >>> manager = TokenManager("tenant", "client", "secret")
        >>> token = await manager.get_token()  # Fetches new token
        >>> token = await manager.get_token()  # Returns cached token
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scope: str = DEFAULT_SCOPE,
        authority: str = DEFAULT_AUTHORITY,
    ):
        missing = [
            name
            for name, value in (
                ("GRAPH_TENANT_ID", tenant_id),
                ("GRAPH_CLIENT_ID", client_id),
                ("GRAPH_CLIENT_SECRET", client_secret),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing Graph credentials: {', '.join(missing)}",
                missing_keys=missing,
            )

        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.token_url = f"{authority.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"

        self._cached_token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        """Get a valid access token, fetching or refreshing as needed.

        Raises:
            SourceAuthError: If the credentials are rejected
            SourceFetchError: If the token endpoint stays unreachable
        """
        if self._cached_token and not self._cached_token.is_expired:
            return self._cached_token.access_token

        async with self._lock:
            if self._cached_token and not self._cached_token.is_expired:
                return self._cached_token.access_token

            self._cached_token = await self._fetch_token()
            return self._cached_token.access_token

    async def _fetch_token(self, max_retries: int = 3) -> CachedToken:
        """Fetch a new access token, retrying transient failures."""
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }

        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.post(
                        self.token_url,
                        data=payload,
                        timeout=aiohttp.ClientTimeout(total=30),
                    ) as response:
                        if response.status == 200:
                            data = await response.json()

                            access_token = data.get("access_token")
                            if not access_token:
                                raise SourceAuthError(
                                    "Token response missing access_token",
                                    details={"response_keys": list(data.keys())},
                                )

                            expires_in = int(data.get("expires_in", 3599))
                            token = CachedToken(
                                access_token=access_token,
                                expires_at=time.time() + expires_in,
                                expires_in=expires_in,
                            )
                            logger.info(
                                f"Token fetched (id={token.token_id}), expires in {expires_in}s"
                            )
                            return token

                        error_text = await response.text()

                        # Azure AD answers bad credentials with 400 or 401
                        if response.status in (400, 401):
                            raise SourceAuthError(
                                f"Token request rejected (HTTP {response.status})",
                                details={"response": error_text[:200]},
                            )

                        last_error = SourceFetchError(
                            f"Token endpoint returned HTTP {response.status}",
                            status_code=response.status,
                            endpoint=self.token_url,
                            response_body=error_text,
                            method="POST",
                        )
                        logger.warning(
                            f"Token fetch attempt {attempt}/{max_retries} failed: "
                            f"HTTP {response.status}"
                        )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = SourceFetchError(
                    f"Network error fetching token: {e}",
                    endpoint=self.token_url,
                    method="POST",
                    cause=e,
                )
                logger.warning(f"Token fetch attempt {attempt}/{max_retries} failed: {e}")

            if attempt < max_retries:
                wait_time = 2 ** (attempt - 1)
                logger.debug(f"Waiting {wait_time}s before retry")
                await asyncio.sleep(wait_time)

        raise SourceFetchError(
            f"Failed to fetch token after {max_retries} attempts",
            endpoint=self.token_url,
            method="POST",
            cause=last_error,
        )

    def invalidate(self):
        """Invalidate the cached token."""
        self._cached_token = None

    @property
    def token_info(self) -> Optional[dict]:
        """Info about the cached token for debugging (never the token itself)."""
        if not self._cached_token:
            return None
        return {
            "token_id": self._cached_token.token_id,
            "is_expired": self._cached_token.is_expired,
            "time_remaining_seconds": self._cached_token.time_remaining,
        }
