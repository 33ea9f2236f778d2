"""
Admin Operations API Endpoints.

Inspection and replay of failed background side effects.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_admin, get_device_manager, get_mailer
from backend.app.models.dlq import DLQStatus
from backend.app.schemas.dlq import DLQItemResponse
from backend.app.services.dead_letters import archive_dead_letter, list_dead_letters, retry_dead_letter
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.get("/dlq", response_model=List[DLQItemResponse])
async def list_dlq_items(
    status: Optional[DLQStatus] = Query(None, description="Filter by status"),
    short_id: Optional[str] = Query(None, alias="shortId", description="Filter by shipment short id"),
    limit: int = Query(50, ge=1, le=200),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """List failed side effects, newest first."""
    return await list_dead_letters(db, status=status, short_id=short_id, limit=limit)


@router.post("/dlq/{dlq_id}/retry", response_model=DLQItemResponse)
async def retry_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    device_manager: DeviceManager = Depends(get_device_manager),
):
    """
    Retry a failed task from the Dead Letter Queue.

    The replay runs before the response; check the returned status.
    """
    return await retry_dead_letter(db, dlq_id, mailer, device_manager)


@router.post("/dlq/{dlq_id}/archive", response_model=DLQItemResponse)
async def archive_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    return await archive_dead_letter(db, dlq_id)
