"""
Strava API client.

Fetches activities (with segment efforts), activity lists and segments.
Handles rate limiting and maps HTTP failures to exceptions.

Strava API Limits:
- 200 requests per 15 minutes
- 2,000 requests per day
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class StravaError(Exception):
    """Base Strava error."""
    pass


class StravaAPIError(StravaError):
    """Strava API error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StravaAuthError(StravaError):
    """Authentication/authorization error (401/403)."""
    pass


class StravaNotFoundError(StravaError):
    """Requested object does not exist or is not visible (404)."""
    pass


class StravaRateLimitError(StravaError):
    """Rate limit exceeded (429 or local limiter)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


# =============================================================================
# Rate Limiter
# =============================================================================

class StravaRateLimiter:
    """
    In-memory rate limiter for Strava API.

    Counts our own requests so we stop before Strava starts answering 429.
    """

    def __init__(
        self,
        short_limit: int = 200,
        short_window_minutes: int = 15,
        daily_limit: int = 2000
    ):
        self.short_limit = short_limit
        self.short_window = timedelta(minutes=short_window_minutes)
        self.daily_limit = daily_limit

        self._short: list[datetime] = []
        self._daily_count = 0
        self._daily_date = datetime.utcnow().date()
        self._lock = asyncio.Lock()

    async def acquire(self) -> bool:
        """Record one request. Returns False if a limit is reached."""
        async with self._lock:
            now = datetime.utcnow()

            if now.date() != self._daily_date:
                self._daily_count = 0
                self._daily_date = now.date()
                logger.info("Daily rate limit counter reset")

            cutoff = now - self.short_window
            self._short = [ts for ts in self._short if ts > cutoff]

            if len(self._short) >= self.short_limit:
                logger.warning(
                    f"Strava rate limit hit: {len(self._short)}/{self.short_limit} "
                    f"requests in {self.short_window}"
                )
                return False

            if self._daily_count >= self.daily_limit:
                logger.warning(f"Strava daily limit hit: {self._daily_count}/{self.daily_limit}")
                return False

            self._short.append(now)
            self._daily_count += 1
            return True

    def get_usage(self) -> dict:
        """Current usage, for the health endpoint."""
        cutoff = datetime.utcnow() - self.short_window
        return {
            "short_term": {
                "used": len([ts for ts in self._short if ts > cutoff]),
                "limit": self.short_limit,
            },
            "daily": {"used": self._daily_count, "limit": self.daily_limit},
        }


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_strava_status(response: httpx.Response) -> None:
    """
    Map a non-2xx Strava response to an exception.

    Raises:
        StravaAuthError: 401/403
        StravaNotFoundError: 404
        StravaRateLimitError: 429
        StravaAPIError: anything else outside 2xx
    """
    status = response.status_code
    if 200 <= status < 300:
        return
    if status in (401, 403):
        raise StravaAuthError(f"Strava rejected token: {status}")
    if status == 404:
        raise StravaNotFoundError("Strava object not found")
    if status == 429:
        raise StravaRateLimitError("Strava rate limit exceeded", retry_after=_retry_after(response))
    raise StravaAPIError(f"API error: {status} - {response.text[:200]}", status_code=status)


# =============================================================================
# Strava Client
# =============================================================================

class StravaClient:
    """
    Async client for the Strava REST API.

    Usage:
        client = StravaClient(http, rate_limiter=StravaRateLimiter())
        activity = await client.get_activity(token, 123456)
        rides = await client.list_activities(token, after=start, before=end)
    """

    MAX_PER_PAGE = 200

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_url: str = "https://www.strava.com/api/v3",
        rate_limiter: Optional[StravaRateLimiter] = None,
    ):
        self._http = http
        self.api_url = api_url.rstrip("/")
        self._rate_limiter = rate_limiter

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        params: Optional[dict] = None
    ):
        """
        Make an authenticated API request with rate limiting.

        Raises:
            StravaRateLimitError: If rate limit exceeded
            StravaAuthError: If authentication fails
            StravaNotFoundError: If the object does not exist
            StravaAPIError: If API returns error or is unreachable
        """
        if self._rate_limiter and not await self._rate_limiter.acquire():
            raise StravaRateLimitError("Local rate limit exceeded")

        try:
            response = await self._http.request(
                method=method,
                url=f"{self.api_url}{endpoint}",
                headers={"Authorization": f"Bearer {access_token}"},
                params=params
            )
        except httpx.HTTPError as e:
            raise StravaAPIError(f"Strava request failed: {e}") from e

        if "X-RateLimit-Limit" in response.headers:
            logger.debug(
                f"Strava rate limit: {response.headers.get('X-RateLimit-Usage')} "
                f"/ {response.headers.get('X-RateLimit-Limit')}"
            )

        raise_for_strava_status(response)
        try:
            return response.json()
        except ValueError as e:
            raise StravaAPIError(
                f"Strava returned a non-JSON body: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

    async def get_activity(self, access_token: str, activity_id: int) -> dict:
        """
        Get detailed activity including every segment effort.

        The payload carries `start_date` (UTC) and `start_date_local`;
        matching must only use the former.
        """
        return await self._api_request(
            "GET",
            f"/activities/{activity_id}",
            access_token,
            {"include_all_efforts": "true"}
        )

    async def list_activities(
        self,
        access_token: str,
        after: int,
        before: int,
        per_page: int = MAX_PER_PAGE,
    ) -> list[dict]:
        """
        List the athlete's activities started inside a window.

        Args:
            access_token: Valid access token
            after: Unix seconds; Strava returns activities strictly after
            before: Unix seconds; Strava returns activities strictly before
            per_page: Page size (max 200)

        Returns:
            Summary activities (no segment efforts) across all pages
        """
        per_page = min(per_page, self.MAX_PER_PAGE)
        activities: list[dict] = []
        page = 1
        while True:
            batch = await self._api_request(
                "GET",
                "/athlete/activities",
                access_token,
                {"after": after, "before": before, "page": page, "per_page": per_page}
            )
            activities.extend(batch)
            if len(batch) < per_page:
                return activities
            page += 1

    async def get_segment(self, access_token: str, segment_id: int) -> dict:
        """Get segment details (distance, grade, location)."""
        return await self._api_request("GET", f"/segments/{segment_id}", access_token)
