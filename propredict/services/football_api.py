"""
API-Football client.

Thin async wrapper around the v3 REST API with a short-lived response
cache. Every proxy endpoint and job goes through here.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from cachetools import TTLCache

from propredict.config import get_settings

logger = logging.getLogger(__name__)


class FootballApiError(Exception):
    """Raised when API-Football cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class FootballApiClient:
    """
    Client for API-Football.

    Features:
    - Lazily created httpx client, closed on shutdown
    - In-memory response cache (60-second TTL by default)
    - Upstream ``errors`` payloads raised as FootballApiError
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        cache_ttl: float = 60,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.api_football_key
        self.base_url = (base_url or settings.api_football_url).rstrip("/")
        self._cache: TTLCache = TTLCache(maxsize=512, ttl=cache_ttl)
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(base_url=self.base_url, timeout=15.0)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        GET an API-Football endpoint.

        Args:
            path: Endpoint path, e.g. ``/fixtures``.
            params: Query parameters.
            use_cache: Serve and store the response in the TTL cache.

        Returns:
            The decoded JSON body.

        Raises:
            FootballApiError: On transport errors, non-200 responses or an
                upstream ``errors`` payload.
        """
        if not self.api_key:
            raise FootballApiError("API key not configured", status_code=500)

        params = params or {}
        cache_key = (path, tuple(sorted((k, str(v)) for k, v in params.items())))
        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        try:
            client = await self._get_http_client()
            response = await client.get(
                path,
                params=params,
                headers={"x-apisports-key": self.api_key},
            )
        except httpx.HTTPError as e:
            logger.error(f"API-Football request failed for {path}: {e}")
            raise FootballApiError(f"API-Football request failed: {e}")

        if response.status_code != 200:
            logger.error(f"API-Football returned {response.status_code} for {path}")
            raise FootballApiError(
                f"API-Football responded with status {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json()
        if data.get("errors"):
            logger.error(f"API-Football errors for {path}: {data['errors']}")
            raise FootballApiError(f"API-Football error: {data['errors']}")

        if use_cache:
            self._cache[cache_key] = data
        return data

    async def get_response(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        use_cache: bool = True,
    ) -> List[Any]:
        """GET an endpoint and return its ``response`` list."""
        data = await self.get(path, params, use_cache=use_cache)
        return data.get("response") or []


# Global client instance
football_api = FootballApiClient()
