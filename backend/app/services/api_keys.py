"""
API Key Service.

Issues, lists and revokes programmatic API keys, and authenticates requests
that present one.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.exceptions import AuthenticationError, ResourceNotFoundError
from backend.app.core.security import generate_api_key_secret, hash_secret, verify_secret
from backend.app.models.api_key import ApiKey
from backend.app.schemas.api_key import ApiKeyIdentity
from backend.app.services.side_effects import SideEffectDispatcher

logger = logging.getLogger(__name__)

INVALID_KEY_MESSAGE = "Invalid API Key."


async def stamp_last_used(session_factory: async_sessionmaker, key_id: str) -> None:
    """Record when a key last authenticated. Runs outside the request."""
    async with session_factory() as session:
        await session.execute(
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(last_used_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await session.commit()


class ApiKeyService:

    @staticmethod
    async def authenticate(
        db: AsyncSession,
        secret: Optional[str],
        dispatcher: Optional[SideEffectDispatcher] = None,
    ) -> ApiKeyIdentity:
        """
        Match a presented secret against every active key hash.

        Hashes are salted, so there is no indexed lookup: the cost is one
        verify per active key, each run in a worker thread. Storage errors
        fail closed.

        Raises:
            AuthenticationError: reason "missing", "invalid" or "server_error"
        """
        if not secret or not secret.strip():
            logger.warning("API key authentication failed: no key supplied")
            raise AuthenticationError("Missing API key header.", reason=AuthenticationError.MISSING)

        try:
            result = await db.execute(
                select(ApiKey.id, ApiKey.key_hash, ApiKey.description).where(ApiKey.is_active == True)
            )
            active_keys = result.all()
        except SQLAlchemyError as exc:
            logger.error("API key lookup failed: %s", exc)
            raise AuthenticationError(
                "API authentication failed due to server error.",
                reason=AuthenticationError.SERVER_ERROR
            ) from exc

        if not active_keys:
            logger.warning("API key authentication failed: no active API keys configured")
            raise AuthenticationError(INVALID_KEY_MESSAGE, reason=AuthenticationError.INVALID)

        for key_id, key_hash, description in active_keys:
            if await asyncio.to_thread(verify_secret, secret, key_hash):
                logger.info("API key authentication successful for key %s", key_id)
                if dispatcher is not None:
                    dispatcher.dispatch(
                        "api_key_last_used",
                        stamp_last_used,
                        dispatcher.session_factory,
                        key_id,
                        payload={"api_key_id": key_id},
                        dead_letter=False,
                    )
                return ApiKeyIdentity(id=key_id, description=description)

        logger.warning("API key authentication failed: key does not match any active key")
        raise AuthenticationError(INVALID_KEY_MESSAGE, reason=AuthenticationError.INVALID)

    @staticmethod
    async def create(db: AsyncSession, description: str) -> Tuple[ApiKey, str]:
        """
        Create a key. Returns the row and the plaintext secret; the secret
        is not stored anywhere and cannot be recovered later.
        """
        secret = generate_api_key_secret()
        api_key = ApiKey(
            description=description.strip(),
            key_hash=await asyncio.to_thread(hash_secret, secret),
            is_active=True,
        )
        db.add(api_key)
        await db.commit()
        await db.refresh(api_key)
        logger.info("API key %s created (%s)", api_key.id, api_key.description)
        return api_key, secret

    @staticmethod
    async def list_keys(db: AsyncSession) -> List[ApiKey]:
        result = await db.execute(select(ApiKey).order_by(ApiKey.created_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def set_active(db: AsyncSession, key_id: str, is_active: bool) -> ApiKey:
        result = await db.execute(select(ApiKey).where(ApiKey.id == key_id))
        api_key = result.scalar_one_or_none()
        if not api_key:
            raise ResourceNotFoundError("API Key", key_id)

        api_key.is_active = is_active
        await db.commit()
        await db.refresh(api_key)
        logger.info("API key %s set active=%s", key_id, is_active)
        return api_key

    @staticmethod
    async def deactivate(db: AsyncSession, key_id: str) -> ApiKey:
        """Revoke by deactivation; keys are never hard-deleted here."""
        return await ApiKeyService.set_active(db, key_id, False)
