"""
Strava push subscription API.

Authenticated with the application's client credentials rather than an
athlete token. Strava allows one subscription per application.
"""

import logging
from typing import Optional

import httpx

from .client import StravaAPIError, raise_for_strava_status

logger = logging.getLogger(__name__)


class StravaPushAPI:
    """
    Thin wrapper over /push_subscriptions.

    Usage:
        push = StravaPushAPI(http, client_id, client_secret)
        existing = await push.list_subscriptions()
        created = await push.create_subscription(callback_url, verify_token)
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: Optional[str],
        client_secret: Optional[str],
        api_url: str = "https://www.strava.com/api/v3",
    ):
        self._http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.url = f"{api_url.rstrip('/')}/push_subscriptions"

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def _credentials(self) -> dict:
        return {"client_id": self.client_id, "client_secret": self.client_secret}

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StravaAPIError(f"Strava push subscription request failed: {e}") from e
        raise_for_strava_status(response)
        return response

    async def list_subscriptions(self) -> list[dict]:
        """Existing subscriptions for this application (zero or one)."""
        response = await self._send("GET", self.url, params=self._credentials)
        return response.json() or []

    async def create_subscription(self, callback_url: str, verify_token: str) -> dict:
        """
        Register callback_url.

        Strava validates the callback synchronously: before this call
        returns it sends the hub.challenge GET to callback_url.

        Returns:
            {"id": 12345}
        """
        response = await self._send(
            "POST",
            self.url,
            data={
                **self._credentials,
                "callback_url": callback_url,
                "verify_token": verify_token,
            },
        )
        return response.json()

    async def delete_subscription(self, subscription_id: int) -> None:
        """Delete subscription (Strava answers 204)."""
        await self._send("DELETE", f"{self.url}/{subscription_id}", params=self._credentials)
