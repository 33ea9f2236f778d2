"""
Shipment lifecycle integration tests.

Create -> public receive -> admin verify, direct sign-off, and the
conflict, validation and side-effect behavior around each step.
"""

import asyncio
import pytest
from sqlalchemy import select

from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.email_log import EmailLog
from backend.app.models.shipment_enums import ShipmentStatus

SIGNATURE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAE="


def receipt(serials, **extra):
    body = {"recipientName": "Riley Receiver", "signature": SIGNATURE, "receivedSerials": serials}
    body.update(extra)
    return body


@pytest.mark.asyncio
async def test_create_receive_verify_flow(client, api_headers, admin_headers, location, dispatcher):
    created = await client.post("/v1/shipments", headers=api_headers, json={
        "senderName": "Dana Sender",
        "senderEmail": "dana@example.com",
        "destinationIdentifier": "Warehouse A",
        "devices": [{"serialNumber": "SN-1"}, {"serialNumber": "SN-2"}],
    })
    assert created.status_code == 201
    shipment = created.json()
    assert shipment["status"] == "PENDING"
    assert len(shipment["shortId"]) == 6

    received = await client.put(f"/v1/public/shipments/{shipment['shortId']}", json=receipt(["SN-1"]))
    assert received.status_code == 200
    assert received.json() == {"status": "RECEIVED"}

    detail = (await client.get(f"/v1/admin/shipments/{shipment['id']}", headers=admin_headers)).json()
    devices = {d["serialNumber"]: d for d in detail["devices"]}
    assert detail["status"] == "RECEIVED"
    assert devices["SN-1"]["isCheckedIn"] is True
    assert devices["SN-1"]["checkedInAt"] is not None
    assert devices["SN-2"]["isCheckedIn"] is False
    assert devices["SN-2"]["checkedInAt"] is None

    verified = await client.put(
        f"/v1/admin/shipments/{shipment['id']}/verify",
        json={"verifiedDeviceIds": [devices["SN-1"]["id"]]},
        headers=admin_headers,
    )
    assert verified.status_code == 200
    assert verified.json()["verifiedDevicesCount"] == 1

    detail = (await client.get(f"/v1/admin/shipments/{shipment['id']}", headers=admin_headers)).json()
    assert detail["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_verify_while_pending_conflicts(client, admin_headers, make_shipment, fetch_status, fetch_devices):
    shipment = await make_shipment(status=ShipmentStatus.PENDING)
    device_id = shipment.devices[0].id

    response = await client.put(
        f"/v1/admin/shipments/{shipment.id}/verify",
        json={"verifiedDeviceIds": [device_id]},
        headers=admin_headers,
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"
    assert await fetch_status(shipment.id) == ShipmentStatus.PENDING
    assert not any(d.is_checked_in for d in await fetch_devices(shipment.id))


@pytest.mark.asyncio
async def test_verify_with_foreign_device_changes_nothing(
    client, admin_headers, make_shipment, fetch_status, fetch_devices
):
    shipment = await make_shipment(short_id="AAAAAA", status=ShipmentStatus.RECEIVED)
    other = await make_shipment(short_id="BBBBBB", serials=("OTHER-1",))

    response = await client.put(
        f"/v1/admin/shipments/{shipment.id}/verify",
        json={"verifiedDeviceIds": [shipment.devices[0].id, other.devices[0].id]},
        headers=admin_headers,
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "ERR_VALIDATION"
    assert body["details"]["fields"]["verifiedDeviceIds"] == [other.devices[0].id]
    assert await fetch_status(shipment.id) == ShipmentStatus.RECEIVED
    assert not any(d.is_checked_in for d in await fetch_devices(shipment.id))


@pytest.mark.asyncio
async def test_verify_requires_device_ids(client, admin_headers, make_shipment):
    shipment = await make_shipment(status=ShipmentStatus.RECEIVED)

    response = await client.put(
        f"/v1/admin/shipments/{shipment.id}/verify", json={"verifiedDeviceIds": []}, headers=admin_headers
    )

    assert response.status_code == 400
    assert "verifiedDeviceIds" in response.json()["details"]["fields"]


@pytest.mark.asyncio
async def test_verify_unknown_shipment(client, admin_headers):
    response = await client.put(
        "/v1/admin/shipments/missing/verify", json={"verifiedDeviceIds": ["x"]}, headers=admin_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ShipmentStatus.COMPLETED, ShipmentStatus.CANCELLED, ShipmentStatus.RECEIVED])
async def test_receive_closed_shipment_conflicts(client, make_shipment, fetch_status, fetch_devices, status):
    shipment = await make_shipment(status=status)

    response = await client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-1", "SN-2"]))

    assert response.status_code == 409
    assert await fetch_status(shipment.id) == status
    assert not any(d.is_checked_in for d in await fetch_devices(shipment.id))


@pytest.mark.asyncio
async def test_receive_marks_exactly_submitted_serials(client, make_shipment, fetch_status, fetch_devices, device_manager):
    shipment = await make_shipment(serials=("SN-1", "SN-2", "SN-3"))

    response = await client.put("/v1/public/shipments/qwerty", json=receipt(["SN-1", "SN-3", "NOT-LISTED"]))

    assert response.status_code == 200
    assert await fetch_status(shipment.id) == ShipmentStatus.RECEIVED
    checked = {d.serial_number: d.is_checked_in for d in await fetch_devices(shipment.id)}
    assert checked == {"SN-1": True, "SN-2": False, "SN-3": True}


@pytest.mark.asyncio
async def test_receive_dispatches_unlocks_and_notification(
    client, make_shipment, dispatcher, device_manager, mailer, db_session
):
    shipment = await make_shipment()

    await client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-1", "SN-2", "SN-1"]))
    await dispatcher.drain()

    assert sorted(device_manager.unlocked) == ["SN-1", "SN-2"]
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["subject"] == "Shipment Received: QWERTY"
    assert mailer.sent[0]["to"] == ["ops@example.com", "dana@example.com", "dock@warehouse-a.example.com"]

    logs = (await db_session.execute(
        select(EmailLog).where(EmailLog.shipment_id == shipment.id)
    )).scalars().all()
    assert len(logs) == 3


@pytest.mark.asyncio
async def test_unlock_failure_is_dead_lettered(client, make_shipment, dispatcher, device_manager, fetch_status, db_session):
    shipment = await make_shipment()
    device_manager.fail_serials = {"SN-2"}

    response = await client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-1", "SN-2"]))
    await dispatcher.drain()

    assert response.status_code == 200
    assert await fetch_status(shipment.id) == ShipmentStatus.RECEIVED
    assert device_manager.unlocked == ["SN-1"]

    items = (await db_session.execute(select(DeadLetterQueue))).scalars().all()
    assert len(items) == 1
    assert items[0].task_name == "device_unlock"
    assert items[0].payload["serial_number"] == "SN-2"
    assert items[0].status == DLQStatus.FAILED


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_receipt(client, make_shipment, dispatcher, mailer, db_session):
    await make_shipment()
    mailer.fail = True

    response = await client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-1"]))
    await dispatcher.drain()

    assert response.status_code == 200
    items = (await db_session.execute(select(DeadLetterQueue))).scalars().all()
    assert [i.task_name for i in items] == ["shipment_received_notification"]


@pytest.mark.asyncio
async def test_concurrent_receives_one_wins(client, make_shipment, fetch_status):
    shipment = await make_shipment()

    responses = await asyncio.gather(
        client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-1"])),
        client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-2"])),
    )

    assert sorted(r.status_code for r in responses) == [200, 409]
    assert await fetch_status(shipment.id) == ShipmentStatus.RECEIVED


@pytest.mark.asyncio
async def test_extra_devices_are_recorded(client, make_shipment, fetch_devices):
    shipment = await make_shipment()

    response = await client.put("/v1/public/shipments/QWERTY", json=receipt(
        ["SN-1"],
        extraDevices=[{"serialNumber": "SURPRISE-1", "model": "iPad"}, {"serialNumber": "SN-2"}],
    ))

    assert response.status_code == 200
    devices = {d.serial_number: d for d in await fetch_devices(shipment.id)}
    assert set(devices) == {"SN-1", "SN-2", "SURPRISE-1"}
    assert devices["SURPRISE-1"].is_extra_device is True
    assert devices["SURPRISE-1"].is_checked_in is True
    assert devices["SN-2"].is_extra_device is False
    assert devices["SN-2"].is_checked_in is False


@pytest.mark.asyncio
async def test_receive_rejects_bad_input(client, make_shipment):
    await make_shipment()

    response = await client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-1"], signature="not-a-png"))
    assert response.status_code == 400
    assert "signature" in response.json()["details"]["fields"]

    response = await client.put("/v1/public/shipments/QWERTY", json=receipt(["SN-1"], recipientName="  "))
    assert response.status_code == 400

    response = await client.put("/v1/public/shipments/QWE1TY", json=receipt(["SN-1"]))
    assert response.status_code == 400

    response = await client.put("/v1/public/shipments/ZZZZZZ", json=receipt(["SN-1"]))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_public_view_hides_private_fields(client, make_shipment):
    await make_shipment()

    response = await client.get("/v1/public/shipments/qwerty")

    assert response.status_code == 200
    body = response.json()
    assert body["shortId"] == "QWERTY"
    assert body["location"] == {"name": "Warehouse A"}
    assert "senderEmail" not in body
    assert all(set(d) == {"id", "serialNumber", "assetTag", "model"} for d in body["devices"])


@pytest.mark.asyncio
async def test_sign_off_completes_and_unlocks_checked_in(
    client, admin_headers, make_shipment, dispatcher, device_manager, fetch_status
):
    shipment = await make_shipment(status=ShipmentStatus.RECEIVING, checked_in=("SN-2",))

    response = await client.post(
        f"/v1/admin/shipments/{shipment.id}/signoff",
        json={"recipientName": "Riley Receiver", "signatureDataUrl": SIGNATURE},
        headers=admin_headers,
    )
    await dispatcher.drain()

    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"
    assert response.json()["timestamp"]
    assert await fetch_status(shipment.id) == ShipmentStatus.COMPLETED
    assert device_manager.unlocked == ["SN-2"]


@pytest.mark.asyncio
async def test_sign_off_completed_shipment_conflicts(client, admin_headers, make_shipment):
    shipment = await make_shipment(status=ShipmentStatus.COMPLETED)

    response = await client.post(
        f"/v1/admin/shipments/{shipment.id}/signoff",
        json={"recipientName": "Riley Receiver", "signatureDataUrl": SIGNATURE},
        headers=admin_headers,
    )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_single_device_check_in(client, admin_headers, make_shipment, fetch_devices):
    shipment = await make_shipment()
    url = f"/v1/admin/shipments/{shipment.id}/checkin"

    first = await client.post(url, json={"serialNumber": "SN-1"}, headers=admin_headers)
    assert first.status_code == 200
    assert first.json()["status"] == "checked_in"

    again = await client.post(url, json={"serialNumber": "SN-1"}, headers=admin_headers)
    assert again.json()["status"] == "already_checked_in"

    missing = await client.post(url, json={"serialNumber": "NOPE"}, headers=admin_headers)
    assert missing.status_code == 404

    checked = {d.serial_number: d.is_checked_in for d in await fetch_devices(shipment.id)}
    assert checked == {"SN-1": True, "SN-2": False}


@pytest.mark.asyncio
async def test_admin_list_filters_by_status(client, admin_headers, make_shipment):
    await make_shipment(short_id="AAAAAA", status=ShipmentStatus.PENDING)
    await make_shipment(short_id="BBBBBB", status=ShipmentStatus.RECEIVED)

    response = await client.get("/v1/admin/shipments", params={"status": "RECEIVED"}, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert [s["shortId"] for s in body["shipments"]] == ["BBBBBB"]
