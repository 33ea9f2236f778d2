"""
Shipment state machine tests.
"""

import pytest

from backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from backend.app.models.shipment_enums import TERMINAL_STATUSES, ShipmentStatus
from backend.app.services.shipment_state import ShipmentTransition, apply_transition, can_transition


@pytest.mark.parametrize("status,allowed", [
    (ShipmentStatus.PENDING, True),
    (ShipmentStatus.IN_TRANSIT, True),
    (ShipmentStatus.DELIVERED, True),
    (ShipmentStatus.RECEIVING, False),
    (ShipmentStatus.RECEIVED, False),
    (ShipmentStatus.COMPLETED, False),
    (ShipmentStatus.CANCELLED, False),
])
def test_receive_sources(status, allowed):
    assert can_transition(status, ShipmentTransition.RECEIVE) is allowed


def test_verify_only_from_received():
    allowed = [s for s in ShipmentStatus if can_transition(s, ShipmentTransition.VERIFY)]
    assert allowed == [ShipmentStatus.RECEIVED]


def test_sign_off_from_any_open_status():
    allowed = {s for s in ShipmentStatus if can_transition(s, ShipmentTransition.SIGN_OFF)}
    assert allowed == set(ShipmentStatus) - {ShipmentStatus.COMPLETED, ShipmentStatus.CANCELLED}


def test_nothing_transitions_into_cancelled():
    assert all(t.value.target != ShipmentStatus.CANCELLED for t in ShipmentTransition)


def test_terminal_statuses_are_final():
    for transition in ShipmentTransition:
        assert not transition.value.allowed_from & TERMINAL_STATUSES


@pytest.mark.asyncio
async def test_transition_applies_values(db_session, make_shipment, fetch_status):
    shipment = await make_shipment(status=ShipmentStatus.IN_TRANSIT)

    status = await apply_transition(
        db_session, shipment.id, ShipmentTransition.RECEIVE, recipient_name="Riley"
    )
    await db_session.commit()

    assert status == ShipmentStatus.RECEIVED
    assert await fetch_status(shipment.id) == ShipmentStatus.RECEIVED


@pytest.mark.asyncio
async def test_transition_from_wrong_status_conflicts(db_session, make_shipment, fetch_status):
    shipment = await make_shipment(status=ShipmentStatus.COMPLETED)

    with pytest.raises(ConflictError) as exc_info:
        await apply_transition(db_session, shipment.id, ShipmentTransition.RECEIVE)

    assert exc_info.value.details["current_status"] == "COMPLETED"
    assert await fetch_status(shipment.id) == ShipmentStatus.COMPLETED


@pytest.mark.asyncio
async def test_transition_on_missing_shipment(db_session):
    with pytest.raises(ResourceNotFoundError):
        await apply_transition(db_session, "missing", ShipmentTransition.SIGN_OFF)
