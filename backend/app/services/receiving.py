"""
Receiving and completion flows.

Public receipt moves a shipment to RECEIVED and checks in the serials the
recipient reported. Admins then either verify specific devices
(RECEIVED -> COMPLETED) or sign the shipment off directly. Device unlocks
and notifications are dispatched only after the status change commits.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.shipment import Shipment
from backend.app.models.shipment_enums import ShipmentStatus
from backend.app.schemas.shipment import ReceiveRequest, SignoffRequest
from backend.app.services.check_in import CheckInResult, add_extra_devices, check_in_device, mark_received, mark_verified
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer, NotificationService, ShipmentNotice
from backend.app.services.shipment_state import ShipmentTransition, apply_transition, ensure_transition_allowed
from backend.app.services.shipments import load_shipment, parse_short_id
from backend.app.services.side_effects import SideEffectDispatcher

logger = logging.getLogger(__name__)


def dispatch_unlocks(
    dispatcher: SideEffectDispatcher,
    device_manager: DeviceManager,
    shipment: Shipment,
    serials: Iterable[str],
) -> int:
    """Queue one independent unlock per distinct serial."""
    count = 0
    for serial in dict.fromkeys(serials):
        dispatcher.dispatch(
            "device_unlock",
            device_manager.unlock_device,
            serial,
            payload={"serial_number": serial, "shipment_id": shipment.id, "short_id": shipment.short_id},
        )
        count += 1
    return count


async def receive_shipment(
    db: AsyncSession,
    raw_short_id: str,
    payload: ReceiveRequest,
    dispatcher: SideEffectDispatcher,
    mailer: Mailer,
    device_manager: DeviceManager,
) -> ShipmentStatus:
    """
    Record the recipient's receipt of a shipment.

    Raises:
        ValidationFailedError: Malformed short id
        ResourceNotFoundError: No such shipment
        ConflictError: Shipment is not awaiting receipt
    """
    short_id = parse_short_id(raw_short_id)
    shipment_id = await db.scalar(select(Shipment.id).where(Shipment.short_id == short_id))
    if not shipment_id:
        raise ResourceNotFoundError("Shipment", short_id)

    received_at = datetime.now(timezone.utc)
    try:
        status = await apply_transition(
            db,
            shipment_id,
            ShipmentTransition.RECEIVE,
            recipient_name=payload.recipient_name,
            recipient_signature=payload.signature,
            received_at=received_at,
        )
        checked_in = await mark_received(db, shipment_id, payload.received_serials, received_at)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Shipment %s received by %s; %d of %d reported serial(s) matched the manifest",
        short_id, payload.recipient_name, checked_in, len(set(payload.received_serials))
    )

    if payload.extra_devices and settings.persist_extra_devices:
        try:
            await add_extra_devices(db, shipment_id, payload.extra_devices, received_at)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Shipment %s: could not record extra devices: %s", short_id, exc)

    shipment = await load_shipment(db, shipment_id)
    dispatch_unlocks(dispatcher, device_manager, shipment, payload.received_serials)
    dispatcher.dispatch(
        "shipment_received_notification",
        NotificationService.notify_received,
        mailer,
        ShipmentNotice.from_shipment(shipment),
        settings.admin_notify_email_list,
        payload={"shipment_id": shipment.id, "short_id": shipment.short_id},
    )
    return status


async def verify_shipment(db: AsyncSession, shipment_id: str, device_ids: List[str]) -> int:
    """
    Confirm which devices were physically verified and complete the shipment.

    Returns:
        Number of devices checked in

    Raises:
        ResourceNotFoundError: No such shipment
        ConflictError: Shipment is not RECEIVED
        ValidationFailedError: A device id is not part of the shipment
    """
    result = await db.execute(select(Shipment).where(Shipment.id == shipment_id))
    shipment = result.scalar_one_or_none()
    if not shipment:
        raise ResourceNotFoundError("Shipment", shipment_id)

    ensure_transition_allowed(shipment, ShipmentTransition.VERIFY)

    verified_at = datetime.now(timezone.utc)
    try:
        count = await mark_verified(db, shipment_id, device_ids, verified_at)
        await apply_transition(db, shipment_id, ShipmentTransition.VERIFY)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Shipment %s verified with %d device(s)", shipment_id, count)
    return count


async def sign_off_shipment(
    db: AsyncSession,
    shipment_id: str,
    payload: SignoffRequest,
    dispatcher: SideEffectDispatcher,
    device_manager: DeviceManager,
) -> Tuple[ShipmentStatus, datetime]:
    """
    Complete a shipment on the recipient's signature, from any open status.
    Devices already checked in are unlocked afterwards.
    """
    signed_at = datetime.now(timezone.utc)
    try:
        status = await apply_transition(
            db,
            shipment_id,
            ShipmentTransition.SIGN_OFF,
            recipient_name=payload.recipient_name,
            recipient_signature=payload.signature_data_url,
            received_at=signed_at,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    shipment = await load_shipment(db, shipment_id)
    serials = [d.serial_number for d in shipment.devices if d.is_checked_in]
    queued = dispatch_unlocks(dispatcher, device_manager, shipment, serials)
    logger.info("Shipment %s signed off by %s; %d unlock(s) queued", shipment_id, payload.recipient_name, queued)
    return status, signed_at


async def check_in_shipment_device(db: AsyncSession, shipment_id: str, serial_number: str) -> CheckInResult:
    """Check in one device of a shipment by serial."""
    exists = await db.scalar(select(Shipment.id).where(Shipment.id == shipment_id))
    if not exists:
        raise ResourceNotFoundError("Shipment", shipment_id)

    result = await check_in_device(db, shipment_id, serial_number, datetime.now(timezone.utc))
    if result.already_checked_in:
        logger.info("Device %s on shipment %s was already checked in", serial_number, shipment_id)
    return result
