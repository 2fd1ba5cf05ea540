"""
Shared route dependencies.
"""

from fastapi import Depends, Header, HTTPException, Request

from league.services import Services


def get_services(request: Request) -> Services:
    """Services built in the app lifespan."""
    return request.app.state.services


async def verify_api_key(
    x_api_key: str = Header(..., alias="X-API-Key"),
    services: Services = Depends(get_services),
) -> str:
    """Verify admin API key."""
    expected = services.settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=503, detail="Admin API not configured")
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return x_api_key
