"""
Public Shipment Endpoints.

Unauthenticated receiving page API, addressed by short id.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_device_manager, get_dispatcher, get_mailer
from backend.app.schemas.shipment import PublicShipmentResponse, ReceiveRequest, ReceiveResponse
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer
from backend.app.services.receiving import receive_shipment
from backend.app.services.shipments import load_shipment_by_short_id
from backend.app.services.side_effects import SideEffectDispatcher

router = APIRouter(prefix="/public/shipments", tags=["Public - Shipments"])


@router.get("/{short_id}", response_model=PublicShipmentResponse)
async def get_public_shipment(
    short_id: str = Path(..., description="6-letter shipment code, any case"),
    db: AsyncSession = Depends(get_db),
):
    """Limited view of a shipment for the recipient."""
    shipment = await load_shipment_by_short_id(db, short_id)
    return PublicShipmentResponse.model_validate(shipment)


@router.put("/{short_id}", response_model=ReceiveResponse)
async def receive_public_shipment(
    payload: ReceiveRequest,
    short_id: str = Path(..., description="6-letter shipment code, any case"),
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
    mailer: Mailer = Depends(get_mailer),
    device_manager: DeviceManager = Depends(get_device_manager),
):
    """
    Submit the recipient's signature and the serials found in the box.

    Only shipments awaiting receipt (PENDING, IN_TRANSIT, DELIVERED) accept
    this; anything else is a 409.
    """
    status = await receive_shipment(db, short_id, payload, dispatcher, mailer, device_manager)
    return ReceiveResponse(status=status)
