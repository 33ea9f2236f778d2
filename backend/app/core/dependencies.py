"""
Request dependencies for FastAPI.

Admin routes take a bearer JWT; the programmatic shipment API takes an API
key header. Long-lived collaborators are read from app.state, where the
application lifespan (or a test) puts them.
"""

from typing import Optional
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader, HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.core.config import settings
from backend.app.core.exceptions import AuthenticationError
from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_db
from backend.app.schemas.api_key import ApiKeyIdentity
from backend.app.services.api_keys import ApiKeyService
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer
from backend.app.services.side_effects import SideEffectDispatcher

# Missing credentials are reported through AuthenticationError, not auto 403s
bearer_scheme = HTTPBearer(auto_error=False)
api_key_scheme = APIKeyHeader(name=settings.api_key_header, auto_error=False)


def get_dispatcher(request: Request) -> SideEffectDispatcher:
    return request.app.state.dispatcher


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_device_manager(request: Request) -> DeviceManager:
    return request.app.state.device_manager


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """
    FastAPI dependency for admin routes.

    Validates the bearer token signature and expiry. Any valid session is
    an admin session.

    Raises:
        AuthenticationError: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated", reason=AuthenticationError.MISSING)

    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise AuthenticationError("Could not validate credentials", reason=AuthenticationError.INVALID)

    return payload


async def get_api_key_identity(
    api_key: Optional[str] = Depends(api_key_scheme),
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> ApiKeyIdentity:
    """FastAPI dependency for the programmatic API; see ApiKeyService.authenticate."""
    return await ApiKeyService.authenticate(db, api_key, dispatcher)
