"""
Admin API Key Endpoints.

The plaintext secret is returned once, by the create call.
"""

from typing import List
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_admin
from backend.app.schemas.api_key import ApiKeyCreate, ApiKeyCreatedResponse, ApiKeyResponse, ApiKeyUpdate
from backend.app.services.api_keys import ApiKeyService

router = APIRouter(prefix="/admin/api-keys", tags=["Admin - API Keys"])


@router.get("", response_model=List[ApiKeyResponse])
async def list_api_keys(
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    keys = await ApiKeyService.list_keys(db)
    return [ApiKeyResponse.model_validate(k) for k in keys]


@router.post("", response_model=ApiKeyCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    payload: ApiKeyCreate,
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a key. Store the returned apiKey; it cannot be shown again."""
    api_key, secret = await ApiKeyService.create(db, payload.description)
    return ApiKeyCreatedResponse(
        **ApiKeyResponse.model_validate(api_key).model_dump(),
        api_key=secret
    )


@router.patch("/{key_id}", response_model=ApiKeyResponse)
async def update_api_key(
    payload: ApiKeyUpdate,
    key_id: str = Path(..., description="API key ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    api_key = await ApiKeyService.set_active(db, key_id, payload.is_active)
    return ApiKeyResponse.model_validate(api_key)


@router.delete("/{key_id}", response_model=ApiKeyResponse)
async def deactivate_api_key(
    key_id: str = Path(..., description="API key ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Revoke a key. The row is kept, inactive."""
    api_key = await ApiKeyService.deactivate(db, key_id)
    return ApiKeyResponse.model_validate(api_key)
