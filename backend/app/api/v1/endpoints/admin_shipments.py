"""
Admin Shipment Endpoints.

Listing, detail, verification, sign-off and single-device check-in.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_admin, get_device_manager, get_dispatcher
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.shipment_enums import ShipmentStatus
from backend.app.schemas.shipment import (
    CheckInRequest, CheckInResponse, ShipmentListResponse, ShipmentResponse,
    SignoffRequest, SignoffResponse, VerifyRequest, VerifyResponse
)
from backend.app.services.device_management import DeviceManager
from backend.app.services.receiving import check_in_shipment_device, sign_off_shipment, verify_shipment
from backend.app.services.shipments import list_shipments, load_shipment
from backend.app.services.side_effects import SideEffectDispatcher

router = APIRouter(prefix="/admin/shipments", tags=["Admin - Shipments"])


@router.get("", response_model=ShipmentListResponse)
async def list_shipments_endpoint(
    status: Optional[ShipmentStatus] = Query(None, description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    shipments, total = await list_shipments(db, status=status, page=page, page_size=page_size)
    return ShipmentListResponse(
        shipments=[ShipmentResponse.model_validate(s) for s in shipments],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(
    shipment_id: str = Path(..., description="Shipment ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    shipment = await load_shipment(db, shipment_id)
    if not shipment:
        raise ResourceNotFoundError("Shipment", shipment_id)
    return ShipmentResponse.model_validate(shipment)


@router.put("/{shipment_id}/verify", response_model=VerifyResponse)
async def verify_shipment_endpoint(
    payload: VerifyRequest,
    shipment_id: str = Path(..., description="Shipment ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Check in the verified devices and complete a RECEIVED shipment.

    Every id must belong to this shipment, otherwise nothing is written.
    """
    count = await verify_shipment(db, shipment_id, payload.verified_device_ids)
    return VerifyResponse(
        message="Shipment verified successfully.",
        verified_devices_count=count
    )


@router.post("/{shipment_id}/signoff", response_model=SignoffResponse)
async def sign_off_shipment_endpoint(
    payload: SignoffRequest,
    shipment_id: str = Path(..., description="Shipment ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
    device_manager: DeviceManager = Depends(get_device_manager),
):
    """Complete a shipment directly on the recipient's signature."""
    status, timestamp = await sign_off_shipment(db, shipment_id, payload, dispatcher, device_manager)
    return SignoffResponse(status=status, timestamp=timestamp)


@router.post("/{shipment_id}/checkin", response_model=CheckInResponse)
async def check_in_device_endpoint(
    payload: CheckInRequest,
    shipment_id: str = Path(..., description="Shipment ID"),
    admin: dict = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await check_in_shipment_device(db, shipment_id, payload.serial_number)
    return CheckInResponse(
        status="already_checked_in" if result.already_checked_in else "checked_in",
        serial_number=result.serial_number,
        timestamp=result.checked_in_at
    )
