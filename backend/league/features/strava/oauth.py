"""
Strava OAuth flow.

Handles:
- Authorization URL generation
- Code exchange for tokens
- Token refresh

This is the only code that talks to Strava's token endpoint; TokenManager
is its only caller for refreshes.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)


class StravaOAuthError(Exception):
    """OAuth-related error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StravaOAuth:
    """
    Strava OAuth handler.

    Usage:
        oauth = StravaOAuth(http, client_id, client_secret)
        auth_url = oauth.get_authorization_url(redirect_uri, state="abc")
        tokens = await oauth.exchange_code(code)
        tokens = await oauth.refresh_token(refresh_token)
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: Optional[str],
        client_secret: Optional[str],
        oauth_url: str = "https://www.strava.com/oauth",
    ):
        self._http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorize_url = f"{oauth_url}/authorize"
        self.token_url = f"{oauth_url}/token"

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def get_authorization_url(
        self,
        redirect_uri: str,
        state: Optional[str] = None,
        scope: str = "read,activity:read"
    ) -> str:
        """
        Generate Strava OAuth authorization URL.

        Args:
            redirect_uri: URL to redirect after authorization
            state: Optional state parameter for CSRF protection
            scope: OAuth scope; activity:read is enough for segment efforts
                on non-private rides

        Returns:
            Authorization URL string
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": scope,
            "approval_prompt": "auto"
        }
        if state:
            params["state"] = state

        return f"{self.authorize_url}?{urlencode(params)}"

    async def _token_request(self, grant: dict, action: str) -> dict:
        if not self.configured:
            raise StravaOAuthError("Strava client credentials are not configured")

        try:
            response = await self._http.post(
                self.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    **grant,
                }
            )
        except httpx.HTTPError as e:
            raise StravaOAuthError(f"Token {action} request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Strava token {action} failed: {response.status_code} {response.text}")
            raise StravaOAuthError(
                f"Token {action} failed: {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json()
        for field in ("access_token", "refresh_token", "expires_at"):
            if field not in data:
                raise StravaOAuthError(f"Token {action} response missing {field}")
        return data

    async def exchange_code(self, code: str) -> dict:
        """
        Exchange authorization code for tokens.

        Returns:
            {
                "access_token": "...",
                "refresh_token": "...",
                "expires_at": 1234567890,
                "athlete": {"id": 123, "firstname": "...", ...}
            }

        Raises:
            StravaOAuthError: If token exchange fails
        """
        return await self._token_request(
            {"code": code, "grant_type": "authorization_code"},
            "exchange",
        )

    async def refresh_token(self, refresh_token: str) -> dict:
        """
        Exchange a refresh token for a new access/refresh/expiry triple.

        Strava rotates the refresh token on every call; the returned one
        must replace the stored one.

        Raises:
            StravaOAuthError: If Strava rejects the refresh
        """
        return await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"},
            "refresh",
        )
