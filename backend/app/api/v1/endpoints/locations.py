"""
Admin Location Endpoints.
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_admin
from backend.app.core.exceptions import ConflictError
from backend.app.models.location import Location
from backend.app.schemas.location import LocationCreate, LocationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/locations", tags=["Admin - Locations"])


@router.get("", response_model=List[LocationResponse])
async def list_locations(
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(select(Location).order_by(Location.name))
    return [LocationResponse.model_validate(loc) for loc in result.scalars().all()]


@router.post("", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
async def create_location(
    payload: LocationCreate,
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a destination. Names are unique regardless of case."""
    existing = await db.scalar(
        select(Location.id).where(func.lower(Location.name) == payload.name.lower())
    )
    if existing:
        raise ConflictError(f"Location '{payload.name}' already exists", details={"id": existing})

    location = Location(name=payload.name, recipient_emails=[str(e) for e in payload.recipient_emails])
    db.add(location)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(f"Location '{payload.name}' already exists") from exc

    await db.refresh(location)
    logger.info("Location %s created (%s)", location.id, location.name)
    return LocationResponse.model_validate(location)
