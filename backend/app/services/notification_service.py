"""
Notification Service.

Builds shipment notification emails, sends them through Resend and logs
each delivered message. Sends are dispatched as side effects; a failed send
never affects the shipment that triggered it.
"""

import asyncio
import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

import resend
from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.app.core.config import Settings
from backend.app.models.email_log import EmailLog, EmailType
from backend.app.models.shipment import Shipment

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """The email provider rejected a message."""


@dataclass
class DeviceLine:
    serial_number: str
    model: Optional[str] = None
    asset_tag: Optional[str] = None
    is_checked_in: bool = False


@dataclass
class ShipmentNotice:
    """
    Detached snapshot of a shipment for background rendering, taken while
    the request session is still open.
    """
    shipment_id: str
    short_id: str
    sender_name: str
    sender_email: str
    location_name: str
    location_emails: List[str]
    notify_emails: List[str]
    devices: List[DeviceLine] = field(default_factory=list)
    recipient_name: Optional[str] = None
    received_at: Optional[datetime] = None

    @classmethod
    def from_shipment(cls, shipment: Shipment) -> "ShipmentNotice":
        return cls(
            shipment_id=shipment.id,
            short_id=shipment.short_id,
            sender_name=shipment.sender_name,
            sender_email=shipment.sender_email,
            location_name=shipment.location.name,
            location_emails=list(shipment.location.recipient_emails or []),
            notify_emails=list(shipment.notify_emails or []),
            devices=[
                DeviceLine(d.serial_number, d.model, d.asset_tag, d.is_checked_in)
                for d in shipment.devices
            ],
            recipient_name=shipment.recipient_name,
            received_at=shipment.received_at,
        )


def unique_recipients(*groups: Iterable[Optional[str]]) -> List[str]:
    """Merge address lists, dropping blanks and duplicates, keeping first-seen order."""
    seen = {}
    for group in groups:
        for email in group:
            email = (email or "").strip()
            if email and email.lower() not in seen:
                seen[email.lower()] = email
    return list(seen.values())


class Mailer:
    """Resend-backed email sender that logs every delivered message."""

    def __init__(self, api_key: Optional[str], from_email: Optional[str], session_factory: async_sessionmaker):
        self.api_key = api_key
        self.from_email = from_email
        self.session_factory = session_factory

    @classmethod
    def from_settings(cls, settings: Settings, session_factory: async_sessionmaker) -> "Mailer":
        return cls(settings.resend_api_key, settings.resend_from_email, session_factory)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def _deliver(self, to: List[str], subject: str, html_content: str) -> None:
        resend.api_key = self.api_key
        # The SDK is synchronous
        await asyncio.to_thread(resend.Emails.send, {
            "from": self.from_email,
            "to": to,
            "subject": subject,
            "html": html_content,
        })

    async def send(
        self,
        to: List[str],
        subject: str,
        html_content: str,
        email_type: EmailType,
        shipment_id: Optional[str] = None,
    ) -> bool:
        if not to:
            logger.warning("No recipients for '%s'; nothing sent", subject)
            return False
        if not self.configured:
            logger.warning("Email is not configured (RESEND_API_KEY / RESEND_FROM_EMAIL); skipping '%s'", subject)
            return False

        try:
            await self._deliver(to, subject, html_content)
        except Exception as exc:
            raise EmailDeliveryError(f"Failed to send '{subject}' to {', '.join(to)}: {exc}") from exc

        logger.info("Email '%s' sent to %s", subject, ", ".join(to))

        async with self.session_factory() as session:
            session.add_all([
                EmailLog(
                    shipment_id=shipment_id,
                    email_type=email_type.value,
                    recipient=recipient,
                    subject=subject,
                    html_content=html_content,
                )
                for recipient in to
            ])
            await session.commit()
        return True


def _device_rows(devices: List[DeviceLine], show_status: bool) -> str:
    rows = []
    for d in devices:
        cells = [d.serial_number, d.model or "", d.asset_tag or ""]
        if show_status:
            cells.append("Received" if d.is_checked_in else "Missing")
        rows.append("<tr>" + "".join(f"<td>{html.escape(c)}</td>" for c in cells) + "</tr>")
    return "".join(rows)


def render_new_shipment_email(notice: ShipmentNotice, base_url: str) -> str:
    link = f"{base_url.rstrip('/')}/receive/{notice.short_id}"
    return (
        f"<h2>New shipment {html.escape(notice.short_id)}</h2>"
        f"<p>{html.escape(notice.sender_name)} ({html.escape(notice.sender_email)}) is sending "
        f"{len(notice.devices)} device(s) to {html.escape(notice.location_name)}.</p>"
        f"<table><tr><th>Serial</th><th>Model</th><th>Asset tag</th></tr>"
        f"{_device_rows(notice.devices, show_status=False)}</table>"
        f"<p><a href='{html.escape(link)}'>Receive this shipment</a></p>"
    )


def render_received_email(notice: ShipmentNotice) -> str:
    received = notice.received_at.isoformat() if notice.received_at else ""
    return (
        f"<h2>Shipment {html.escape(notice.short_id)} received</h2>"
        f"<p>Received at {html.escape(notice.location_name)} by "
        f"{html.escape(notice.recipient_name or '')} on {html.escape(received)}.</p>"
        f"<table><tr><th>Serial</th><th>Model</th><th>Asset tag</th><th>Status</th></tr>"
        f"{_device_rows(notice.devices, show_status=True)}</table>"
    )


class NotificationService:

    @staticmethod
    async def notify_new_shipment(mailer: Mailer, notice: ShipmentNotice, admin_emails: List[str], base_url: str) -> bool:
        recipients = unique_recipients(admin_emails, notice.location_emails, notice.notify_emails)
        return await mailer.send(
            to=recipients,
            subject=f"New Shipment Created: {notice.short_id}",
            html_content=render_new_shipment_email(notice, base_url),
            email_type=EmailType.NEW_SHIPMENT,
            shipment_id=notice.shipment_id,
        )

    @staticmethod
    async def notify_received(mailer: Mailer, notice: ShipmentNotice, admin_emails: List[str]) -> bool:
        recipients = unique_recipients(admin_emails, [notice.sender_email], notice.location_emails)
        return await mailer.send(
            to=recipients,
            subject=f"Shipment Received: {notice.short_id}",
            html_content=render_received_email(notice),
            email_type=EmailType.SHIPMENT_RECEIVED,
            shipment_id=notice.shipment_id,
        )
