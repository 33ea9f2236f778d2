"""
Shipment API Endpoints.

Programmatic shipment creation and lookup, authenticated by API key.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_api_key_identity, get_device_manager, get_dispatcher, get_mailer
from backend.app.schemas.api_key import ApiKeyIdentity
from backend.app.schemas.shipment import ShipmentCreate, ShipmentResponse
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer
from backend.app.services.shipments import create_shipment, load_shipment_by_short_id
from backend.app.services.side_effects import SideEffectDispatcher

router = APIRouter(prefix="/shipments", tags=["Shipments"])


@router.post("", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment_endpoint(
    payload: ShipmentCreate,
    identity: ApiKeyIdentity = Depends(get_api_key_identity),
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
    mailer: Mailer = Depends(get_mailer),
    device_manager: DeviceManager = Depends(get_device_manager),
):
    """
    Create a shipment with its device manifest.

    The destination is a location id or name (case-insensitive). The new
    shipment is PENDING and carries a unique 6-letter short id. Device locks
    and notification emails run in the background.
    """
    shipment = await create_shipment(db, payload, identity, dispatcher, mailer, device_manager)
    return ShipmentResponse.model_validate(shipment)


@router.get("/{short_id}", response_model=ShipmentResponse)
async def get_shipment_endpoint(
    short_id: str,
    identity: ApiKeyIdentity = Depends(get_api_key_identity),
    db: AsyncSession = Depends(get_db),
):
    """Full shipment by short id (case-insensitive), with location and devices."""
    shipment = await load_shipment_by_short_id(db, short_id)
    return ShipmentResponse.model_validate(shipment)
