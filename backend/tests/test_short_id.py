"""
Short id allocation tests.

Covers the format, collision retries up to the cap, failure beyond it and
uniqueness under concurrent creation.
"""

import asyncio
import re
import pytest
from sqlalchemy import func, select

from backend.app.core.exceptions import ConflictError, ShortIdAllocationError
from backend.app.models.api_key import ApiKey
from backend.app.models.shipment import Shipment
from backend.app.services.short_id import (
    generate_short_id, is_valid_short_id, normalize_short_id, persist_with_short_id
)

SHORT_ID_RE = re.compile(r"^[A-Z]{6}$")


def shipment_payload(**overrides):
    payload = {
        "senderName": "Dana Sender",
        "senderEmail": "dana@example.com",
        "destinationIdentifier": "Warehouse A",
        "devices": [{"serialNumber": "SN-1"}, {"serialNumber": "SN-2"}],
    }
    payload.update(overrides)
    return payload


def test_generated_ids_are_six_uppercase_letters():
    for _ in range(200):
        assert SHORT_ID_RE.match(generate_short_id())


def test_normalize_and_validate():
    assert normalize_short_id("  abcdef ") == "ABCDEF"
    assert is_valid_short_id("ABCDEF")
    assert not is_valid_short_id("ABCDE")
    assert not is_valid_short_id("ABCDE1")
    assert not is_valid_short_id("abcdef")


@pytest.mark.asyncio
async def test_collisions_below_cap_are_retried(client, api_headers, make_shipment, db_session, mocker):
    await make_shipment(short_id="AAAAAA")
    generator = mocker.patch(
        "backend.app.services.short_id.generate_short_id",
        side_effect=["AAAAAA", "AAAAAA", "AAAAAA", "AAAAAA", "BBBBBB"],
    )

    response = await client.post("/v1/shipments", json=shipment_payload(), headers=api_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["shortId"] == "BBBBBB"
    assert len(body["devices"]) == 2
    assert generator.call_count == 5


@pytest.mark.asyncio
async def test_collisions_beyond_cap_fail_cleanly(client, api_headers, make_shipment, db_session, mocker):
    await make_shipment(short_id="AAAAAA")
    mocker.patch("backend.app.services.short_id.generate_short_id", return_value="AAAAAA")

    response = await client.post("/v1/shipments", json=shipment_payload(), headers=api_headers)

    assert response.status_code == 500
    assert response.json()["error_code"] == "ERR_INTERNAL_002"
    total = await db_session.scalar(select(func.count(Shipment.id)))
    assert total == 1


@pytest.mark.asyncio
async def test_concurrent_creations_get_distinct_ids(client, api_headers, location):
    responses = await asyncio.gather(*[
        client.post(
            "/v1/shipments",
            json=shipment_payload(devices=[{"serialNumber": f"SN-{i}"}]),
            headers=api_headers,
        )
        for i in range(8)
    ])

    assert all(r.status_code == 201 for r in responses)
    short_ids = [r.json()["shortId"] for r in responses]
    assert all(SHORT_ID_RE.match(s) for s in short_ids)
    assert len(set(short_ids)) == len(short_ids)


@pytest.mark.asyncio
async def test_other_unique_violations_are_conflicts(db_session):
    db_session.add(ApiKey(key_hash="duplicate-hash", description="first"))
    await db_session.commit()

    with pytest.raises(ConflictError):
        await persist_with_short_id(
            db_session,
            lambda candidate: ApiKey(key_hash="duplicate-hash", description=candidate),
        )


@pytest.mark.asyncio
async def test_allocation_error_reports_attempts(db_session, make_shipment, location):
    await make_shipment(short_id="ZZZZZZ")
    location_id = location.id

    with pytest.raises(ShortIdAllocationError) as exc_info:
        await persist_with_short_id(
            db_session,
            lambda candidate: Shipment(
                short_id=candidate,
                sender_name="x",
                sender_email="x@example.com",
                location_id=location_id,
            ),
            max_attempts=3,
            generator=lambda: "ZZZZZZ",
        )

    assert exc_info.value.attempts == 3
    assert exc_info.value.status_code == 500
