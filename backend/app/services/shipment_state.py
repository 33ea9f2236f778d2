"""
Shipment state machine.

Every transition is one conditional UPDATE:

    UPDATE shipments SET status = :target, ... WHERE id = :id AND status IN (:allowed)

and the affected row count tells whether the precondition held. Two racing
requests therefore cannot both leave the same source state; the loser sees
zero rows and gets a ConflictError. The caller owns the transaction and
commits only after any accompanying device writes succeed.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from backend.app.models.shipment import Shipment
from backend.app.models.shipment_enums import TERMINAL_STATUSES, ShipmentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    name: str
    allowed_from: FrozenSet[ShipmentStatus]
    target: ShipmentStatus


class ShipmentTransition(enum.Enum):
    """
    The transitions the lifecycle engine implements.

    VERIFY and SIGN_OFF both end in COMPLETED but are separate entry points
    with different preconditions and device semantics.
    """
    RECEIVE = Transition(
        name="RECEIVE",
        allowed_from=frozenset({ShipmentStatus.PENDING, ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED}),
        target=ShipmentStatus.RECEIVED,
    )
    VERIFY = Transition(
        name="VERIFY",
        allowed_from=frozenset({ShipmentStatus.RECEIVED}),
        target=ShipmentStatus.COMPLETED,
    )
    SIGN_OFF = Transition(
        name="SIGN_OFF",
        allowed_from=frozenset(ShipmentStatus) - TERMINAL_STATUSES,
        target=ShipmentStatus.COMPLETED,
    )


def can_transition(current: ShipmentStatus, transition: ShipmentTransition) -> bool:
    return current in transition.value.allowed_from


async def apply_transition(
    db: AsyncSession,
    shipment_id: str,
    transition: ShipmentTransition,
    **values: Any,
) -> ShipmentStatus:
    """
    Move a shipment to the transition's target status if, and only if, its
    current status is an allowed source. Extra column values are written in
    the same statement. Does not commit.

    Raises:
        ResourceNotFoundError: No shipment with this id
        ConflictError: Current status is not an allowed source
    """
    spec = transition.value
    stmt = (
        update(Shipment)
        .where(Shipment.id == shipment_id, Shipment.status.in_(sorted(spec.allowed_from)))
        .values(status=spec.target, **values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if result.rowcount == 1:
        logger.info("Shipment %s: %s -> %s", shipment_id, spec.name, spec.target.value)
        return spec.target

    current = await db.scalar(select(Shipment.status).where(Shipment.id == shipment_id))
    if current is None:
        raise ResourceNotFoundError("Shipment", shipment_id)

    logger.warning(
        "Shipment %s: %s rejected from status %s", shipment_id, spec.name, current.value
    )
    raise ConflictError(
        f"Conflict: Shipment status ({current.value}) does not allow {spec.name.lower().replace('_', '-')}.",
        details=_conflict_details(current, transition),
    )


def _conflict_details(current: ShipmentStatus, transition: ShipmentTransition) -> Dict[str, Any]:
    return {
        "current_status": current.value,
        "transition": transition.value.name,
        "allowed_from": sorted(s.value for s in transition.value.allowed_from),
    }


def ensure_transition_allowed(shipment: Shipment, transition: ShipmentTransition) -> None:
    """Early precondition check for flows that validate before writing."""
    if not can_transition(shipment.status, transition):
        raise ConflictError(
            f"Shipment cannot be {_past_tense(transition)}, status is {shipment.status.value}, "
            f"expected {' or '.join(sorted(s.value for s in transition.value.allowed_from))}.",
            details=_conflict_details(shipment.status, transition),
        )


def _past_tense(transition: ShipmentTransition) -> str:
    return {
        ShipmentTransition.RECEIVE: "received",
        ShipmentTransition.VERIFY: "verified",
        ShipmentTransition.SIGN_OFF: "signed off",
    }[transition]
