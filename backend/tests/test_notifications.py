"""
Notification rendering and recipient tests.
"""

import pytest

from backend.app.models.email_log import EmailType
from backend.app.services.notification_service import (
    DeviceLine, Mailer, ShipmentNotice, render_received_email, unique_recipients
)


def test_unique_recipients_keeps_first_seen_order():
    assert unique_recipients(
        ["ops@example.com", ""], ["Dock@example.com", "OPS@example.com"], [None, "dock@example.com"]
    ) == ["ops@example.com", "Dock@example.com"]


def test_received_email_escapes_and_marks_missing():
    notice = ShipmentNotice(
        shipment_id="s-1",
        short_id="QWERTY",
        sender_name="Dana",
        sender_email="dana@example.com",
        location_name="Warehouse <A>",
        location_emails=[],
        notify_emails=[],
        devices=[DeviceLine("SN-1", is_checked_in=True), DeviceLine("SN-2")],
        recipient_name="Riley",
    )

    html = render_received_email(notice)

    assert "Warehouse &lt;A&gt;" in html
    assert "<td>SN-1</td><td></td><td></td><td>Received</td>" in html
    assert "<td>SN-2</td><td></td><td></td><td>Missing</td>" in html


@pytest.mark.asyncio
async def test_unconfigured_mailer_skips(session_factory):
    mailer = Mailer(None, None, session_factory)
    sent = await mailer.send(["ops@example.com"], "Hello", "<p>Hi</p>", EmailType.NEW_SHIPMENT)
    assert sent is False


@pytest.mark.asyncio
async def test_no_recipients_skips(mailer):
    assert await mailer.send([], "Hello", "<p>Hi</p>", EmailType.NEW_SHIPMENT) is False
    assert mailer.sent == []
