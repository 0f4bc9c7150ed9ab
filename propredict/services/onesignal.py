"""
OneSignal REST client.

Pushes are fire-and-forget: failures are logged and returned to the
caller, never retried.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from propredict.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    """Outcome of one OneSignal notification call."""

    ok: bool
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def recipients(self) -> int:
        recipients = self.body.get("recipients")
        return recipients if isinstance(recipients, int) else 0

    @property
    def invalid_player_ids(self) -> List[str]:
        errors = self.body.get("errors")
        if isinstance(errors, dict) and isinstance(errors.get("invalid_player_ids"), list):
            return list(errors["invalid_player_ids"])
        return []


class OneSignalError(RuntimeError):
    """Raised when OneSignal credentials are missing."""


class OneSignalClient:
    """Client for the OneSignal notifications endpoint."""

    def __init__(
        self,
        app_id: Optional[str] = None,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
    ):
        settings = get_settings()
        self.app_id = (app_id if app_id is not None else settings.onesignal_app_id).strip()
        self.api_key = (api_key if api_key is not None else settings.onesignal_api_key).strip()
        self.api_url = api_url or settings.onesignal_api_url
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.api_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=15.0)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def send(self, payload: Dict[str, Any]) -> PushResult:
        """
        Create a notification.

        Args:
            payload: Notification body without ``app_id``.

        Returns:
            PushResult; transport errors come back as a failed result.

        Raises:
            OneSignalError: If credentials are not configured.
        """
        if not self.configured:
            raise OneSignalError("OneSignal credentials not configured")

        try:
            client = await self._get_http_client()
            response = await client.post(
                self.api_url,
                json={"app_id": self.app_id, **payload},
                headers={
                    "Content-Type": "application/json; charset=utf-8",
                    "Authorization": f"Basic {self.api_key}",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"OneSignal request failed: {e}")
            return PushResult(ok=False, status_code=0, body={"error": str(e)})

        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text}

        result = PushResult(ok=response.is_success, status_code=response.status_code, body=body)
        if not result.ok:
            logger.error(f"OneSignal error ({response.status_code}): {body}")
        return result


# Global client instance
onesignal = OneSignalClient()
