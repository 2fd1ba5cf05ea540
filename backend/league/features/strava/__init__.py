"""
Strava integration module.

Usage:
    from league.features.strava import StravaClient, TokenManager

Components:
- StravaOAuth: OAuth flow (auth URL, code exchange, refresh)
- StravaClient: API client (activities with efforts, segments)
- StravaPushAPI: Push subscription endpoints
- TokenManager: Per-participant token lifecycle with refresh locking
- TokenCipher: Token encryption at rest

Models:
- StravaToken: OAuth tokens storage
"""

from .models import StravaToken
from .oauth import (
    StravaOAuth,
    StravaOAuthError,
)
from .client import (
    StravaClient,
    StravaError,
    StravaAPIError,
    StravaAuthError,
    StravaNotFoundError,
    StravaRateLimitError,
    StravaRateLimiter,
    raise_for_strava_status,
)
from .push import StravaPushAPI
from .encryption import TokenCipher
from .tokens import (
    TokenManager,
    NotConnectedError,
    RefreshFailedError,
)
from .repository import StravaTokenRepository

__all__ = [
    # Models
    "StravaToken",
    # OAuth
    "StravaOAuth",
    "StravaOAuthError",
    # Client
    "StravaClient",
    "StravaError",
    "StravaAPIError",
    "StravaAuthError",
    "StravaNotFoundError",
    "StravaRateLimitError",
    "StravaRateLimiter",
    "raise_for_strava_status",
    "StravaPushAPI",
    # Tokens
    "TokenManager",
    "TokenCipher",
    "NotConnectedError",
    "RefreshFailedError",
    # Repositories
    "StravaTokenRepository",
]
