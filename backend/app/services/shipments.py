"""
Shipment creation and lookup.

Creation resolves the destination, allocates a short id while inserting the
shipment with its manifest in one transaction, and queues the new-shipment
notification once the row is committed.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from backend.app.models.device import Device
from backend.app.models.location import Location
from backend.app.models.shipment import Shipment
from backend.app.models.shipment_enums import ShipmentStatus
from backend.app.schemas.api_key import ApiKeyIdentity
from backend.app.schemas.shipment import ShipmentCreate
from backend.app.services import short_id as short_ids
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer, NotificationService, ShipmentNotice
from backend.app.services.side_effects import SideEffectDispatcher

logger = logging.getLogger(__name__)


async def resolve_location(db: AsyncSession, identifier: str) -> Optional[Location]:
    """Find a location by id, falling back to a case-insensitive name match."""
    identifier = identifier.strip()
    result = await db.execute(
        select(Location).where(
            or_(Location.id == identifier, func.lower(Location.name) == identifier.lower())
        )
    )
    matches = result.scalars().all()
    # An id match wins over a name that happens to equal another location's id
    for location in matches:
        if location.id == identifier:
            return location
    return matches[0] if matches else None


async def load_shipment(db: AsyncSession, shipment_id: str) -> Optional[Shipment]:
    """Fetch a shipment with its location and devices, refreshing any stale copy."""
    result = await db.execute(
        select(Shipment)
        .where(Shipment.id == shipment_id)
        .options(selectinload(Shipment.devices), selectinload(Shipment.location))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def parse_short_id(raw: str) -> str:
    """
    Normalize a short id from a URL.

    Raises:
        ValidationFailedError: Not six letters
    """
    candidate = short_ids.normalize_short_id(raw)
    if not short_ids.is_valid_short_id(candidate):
        raise ValidationFailedError(
            "Invalid Shipment ID format.",
            fields={"shortId": ["Must be 6 letters (A-Z)."]}
        )
    return candidate


async def load_shipment_by_short_id(db: AsyncSession, raw_short_id: str) -> Shipment:
    short_id = parse_short_id(raw_short_id)
    result = await db.execute(
        select(Shipment)
        .where(Shipment.short_id == short_id)
        .options(selectinload(Shipment.devices), selectinload(Shipment.location))
        .execution_options(populate_existing=True)
    )
    shipment = result.scalar_one_or_none()
    if not shipment:
        raise ResourceNotFoundError("Shipment", short_id)
    return shipment


async def list_shipments(
    db: AsyncSession,
    status: Optional[ShipmentStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Shipment], int]:
    """Newest first, optionally filtered by status."""
    query = select(Shipment)
    count_query = select(func.count(Shipment.id))
    if status is not None:
        query = query.where(Shipment.status == status)
        count_query = count_query.where(Shipment.status == status)

    total = await db.scalar(count_query)
    result = await db.execute(
        query.options(selectinload(Shipment.devices), selectinload(Shipment.location))
        .order_by(Shipment.created_at.desc(), Shipment.short_id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total or 0


async def create_shipment(
    db: AsyncSession,
    payload: ShipmentCreate,
    identity: ApiKeyIdentity,
    dispatcher: SideEffectDispatcher,
    mailer: Mailer,
    device_manager: DeviceManager,
) -> Shipment:
    """
    Create a PENDING shipment with its manifest. Once committed, each device
    is put in lost mode for transit.

    Raises:
        ResourceNotFoundError: Destination matches no location
        ConflictError: A unique constraint other than short_id was violated
        ShortIdAllocationError: Short id retries exhausted
    """
    location = await resolve_location(db, payload.destination_identifier)
    if not location:
        raise ResourceNotFoundError("Location", payload.destination_identifier)
    # Rollbacks during id allocation expire loaded objects
    location_id = location.id

    def build(candidate: str) -> Shipment:
        return Shipment(
            short_id=candidate,
            status=ShipmentStatus.PENDING,
            sender_name=payload.sender_name,
            sender_email=payload.sender_email,
            carrier=payload.carrier,
            tracking_number=payload.tracking_number,
            client_reference_id=payload.client_reference_id,
            notes=payload.notes,
            notify_emails=payload.notify_emails,
            location_id=location_id,
            api_key_id=identity.id,
            devices=[
                Device(
                    serial_number=device.serial_number,
                    asset_tag=device.asset_tag,
                    model=device.model,
                    is_checked_in=False,
                )
                for device in payload.devices
            ],
        )

    created = await short_ids.persist_with_short_id(
        db, build, max_attempts=settings.short_id_max_attempts
    )
    shipment = await load_shipment(db, created.id)
    logger.info(
        "Shipment %s (%s) created by %s with %d device(s)",
        shipment.short_id, shipment.id, identity.label, len(shipment.devices)
    )

    dispatcher.dispatch(
        "new_shipment_notification",
        NotificationService.notify_new_shipment,
        mailer,
        ShipmentNotice.from_shipment(shipment),
        settings.admin_notify_email_list,
        settings.app_base_url,
        payload={"shipment_id": shipment.id, "short_id": shipment.short_id},
    )
    for serial in dict.fromkeys(d.serial_number for d in shipment.devices):
        dispatcher.dispatch(
            "device_lock",
            device_manager.lock_device,
            serial,
            payload={"serial_number": serial, "shipment_id": shipment.id, "short_id": shipment.short_id},
        )
    return shipment
