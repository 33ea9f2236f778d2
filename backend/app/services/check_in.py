"""
Device check-in tracking.

Writes is_checked_in and checked_in_at together so that one is set exactly
when the other is. Bulk writers do not commit; they run inside the caller's
status transition.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from backend.app.models.device import Device
from backend.app.schemas.shipment import ExtraDevice

logger = logging.getLogger(__name__)


@dataclass
class CheckInResult:
    serial_number: str
    checked_in_at: datetime
    already_checked_in: bool


async def mark_received(
    db: AsyncSession,
    shipment_id: str,
    serials: Iterable[str],
    at: datetime,
) -> int:
    """
    Check in every device of the shipment whose serial is in `serials`.
    Devices not listed are left as they are.

    Returns:
        Number of device rows updated
    """
    serial_set = {s for s in serials if s}
    if not serial_set:
        return 0

    result = await db.execute(
        update(Device)
        .where(Device.shipment_id == shipment_id, Device.serial_number.in_(sorted(serial_set)))
        .values(is_checked_in=True, checked_in_at=at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def mark_verified(
    db: AsyncSession,
    shipment_id: str,
    device_ids: Sequence[str],
    at: datetime,
) -> int:
    """
    Check in devices by id after confirming every id belongs to the shipment.
    Nothing is written if any id is foreign.

    Raises:
        ValidationFailedError: Some ids are not devices of this shipment
    """
    result = await db.execute(select(Device.id).where(Device.shipment_id == shipment_id))
    owned_ids = set(result.scalars().all())

    invalid_ids = [device_id for device_id in device_ids if device_id not in owned_ids]
    if invalid_ids:
        raise ValidationFailedError(
            f"Invalid device IDs provided that do not belong to this shipment: {', '.join(invalid_ids)}",
            fields={"verifiedDeviceIds": invalid_ids},
        )

    result = await db.execute(
        update(Device)
        .where(Device.shipment_id == shipment_id, Device.id.in_(sorted(set(device_ids))))
        .values(is_checked_in=True, checked_in_at=at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def add_extra_devices(
    db: AsyncSession,
    shipment_id: str,
    extra_devices: Sequence[ExtraDevice],
    at: datetime,
) -> List[Device]:
    """
    Record unmanifested devices found at receipt, already checked in.
    Serials already on the shipment are skipped. Commits its own transaction.
    """
    if not extra_devices:
        return []

    result = await db.execute(select(Device.serial_number).where(Device.shipment_id == shipment_id))
    known_serials = set(result.scalars().all())

    created = []
    for extra in extra_devices:
        if extra.serial_number in known_serials:
            continue
        known_serials.add(extra.serial_number)
        device = Device(
            shipment_id=shipment_id,
            serial_number=extra.serial_number,
            asset_tag=extra.asset_tag,
            model=extra.model,
            is_checked_in=True,
            checked_in_at=at,
            is_extra_device=True,
        )
        db.add(device)
        created.append(device)

    if created:
        await db.commit()
        logger.info("Shipment %s: recorded %d extra device(s)", shipment_id, len(created))
    return created


async def check_in_device(
    db: AsyncSession,
    shipment_id: str,
    serial_number: str,
    at: datetime,
) -> CheckInResult:
    """
    Check in a single device by serial, scoped to one shipment. Commits.

    Raises:
        ResourceNotFoundError: The serial is not part of the shipment
    """
    result = await db.execute(
        select(Device).where(Device.shipment_id == shipment_id, Device.serial_number == serial_number)
    )
    device = result.scalars().first()
    if not device:
        raise ResourceNotFoundError("Device", serial_number)

    if device.is_checked_in:
        return CheckInResult(serial_number, device.checked_in_at, already_checked_in=True)

    device.is_checked_in = True
    device.checked_in_at = at
    await db.commit()
    return CheckInResult(serial_number, at, already_checked_in=False)
