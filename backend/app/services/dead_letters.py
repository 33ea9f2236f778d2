"""
Dead letter replay.

Failed side effects are replayed inline from their recorded payload, so the
admin sees the outcome of the retry in the response.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer, NotificationService, ShipmentNotice
from backend.app.services.shipments import load_shipment

logger = logging.getLogger(__name__)

RETRYABLE_TASKS = frozenset({
    "device_lock",
    "device_unlock",
    "new_shipment_notification",
    "shipment_received_notification",
})


async def list_dead_letters(
    db: AsyncSession,
    status: Optional[DLQStatus] = None,
    short_id: Optional[str] = None,
    limit: int = 50,
) -> List[DeadLetterQueue]:
    query = select(DeadLetterQueue)
    if status is not None:
        query = query.where(DeadLetterQueue.status == status)
    if short_id:
        query = query.where(DeadLetterQueue.short_id == short_id.strip().upper())
    result = await db.execute(query.order_by(DeadLetterQueue.created_at.desc(), DeadLetterQueue.id.desc()).limit(limit))
    return list(result.scalars().all())


async def _get_item(db: AsyncSession, item_id: int) -> DeadLetterQueue:
    result = await db.execute(select(DeadLetterQueue).where(DeadLetterQueue.id == item_id))
    item = result.scalar_one_or_none()
    if not item:
        raise ResourceNotFoundError("DLQ item", item_id)
    return item


async def _replay(db: AsyncSession, item: DeadLetterQueue, mailer: Mailer, device_manager: DeviceManager) -> None:
    payload = item.payload or {}

    if item.task_name == "device_lock":
        await device_manager.lock_device(payload["serial_number"])
        return
    if item.task_name == "device_unlock":
        await device_manager.unlock_device(payload["serial_number"])
        return

    shipment = await load_shipment(db, payload.get("shipment_id"))
    if not shipment:
        raise ResourceNotFoundError("Shipment", payload.get("shipment_id"))
    notice = ShipmentNotice.from_shipment(shipment)

    if item.task_name == "new_shipment_notification":
        await NotificationService.notify_new_shipment(
            mailer, notice, settings.admin_notify_email_list, settings.app_base_url
        )
    else:
        await NotificationService.notify_received(mailer, notice, settings.admin_notify_email_list)


async def retry_dead_letter(
    db: AsyncSession,
    item_id: int,
    mailer: Mailer,
    device_manager: DeviceManager,
) -> DeadLetterQueue:
    """
    Replay one failed side effect. The item ends PROCESSED on success and
    back in FAILED, with the new error, otherwise.

    Raises:
        ResourceNotFoundError: Unknown item
        ConflictError: Item is archived, already processed, or not replayable
    """
    item = await _get_item(db, item_id)
    if item.status in (DLQStatus.ARCHIVED, DLQStatus.PROCESSED):
        raise ConflictError(f"DLQ item {item_id} is {item.status.value} and cannot be retried")
    if item.task_name not in RETRYABLE_TASKS:
        raise ConflictError(f"Task {item.task_name} cannot be retried")

    item.status = DLQStatus.RETRYING
    item.retry_count += 1
    item.last_retry_at = datetime.now(timezone.utc)
    await db.commit()

    try:
        await _replay(db, item, mailer, device_manager)
    except Exception as exc:
        logger.error("Retry of DLQ item %s (%s) failed: %s", item_id, item.task_name, exc)
        item.status = DLQStatus.FAILED
        item.error_message = f"{type(exc).__name__}: {exc}"
    else:
        logger.info("Retry of DLQ item %s (%s) succeeded", item_id, item.task_name)
        item.status = DLQStatus.PROCESSED

    await db.commit()
    await db.refresh(item)
    return item


async def archive_dead_letter(db: AsyncSession, item_id: int) -> DeadLetterQueue:
    """Give up on an item; it stays for the record."""
    item = await _get_item(db, item_id)
    item.status = DLQStatus.ARCHIVED
    await db.commit()
    await db.refresh(item)
    return item
