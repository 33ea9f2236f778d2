"""
Short ID allocation.

Shipments are shared by a 6-letter code (26^6 ≈ 308M values). A candidate is
generated and written together with its shipment; the unique index on
shipments.short_id decides collisions, so there is no check-then-insert race.
"""

import logging
import re
import secrets
import string
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConflictError, ShortIdAllocationError

logger = logging.getLogger(__name__)

SHORT_ID_LENGTH = 6
SHORT_ID_ALPHABET = string.ascii_uppercase
SHORT_ID_PATTERN = re.compile(r"^[A-Z]{6}$")
DEFAULT_MAX_ATTEMPTS = 5

T = TypeVar("T")


def generate_short_id(length: int = SHORT_ID_LENGTH) -> str:
    """Draw `length` characters uniformly from A-Z."""
    return "".join(secrets.choice(SHORT_ID_ALPHABET) for _ in range(length))


def normalize_short_id(raw: str) -> str:
    """Inbound ids are matched case-insensitively."""
    return (raw or "").strip().upper()


def is_valid_short_id(value: str) -> bool:
    return bool(SHORT_ID_PATTERN.match(value or ""))


def is_short_id_collision(exc: IntegrityError) -> bool:
    """
    True when the violated constraint is the short_id unique index.

    SQLite reports "UNIQUE constraint failed: shipments.short_id"; PostgreSQL
    names the index (ix_shipments_short_id) and the key column.
    """
    message = str(exc.orig) if exc.orig is not None else str(exc)
    message = message.lower()
    return "short_id" in message and ("unique" in message or "duplicate" in message)


async def persist_with_short_id(
    db: AsyncSession,
    build: Callable[[str], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    generator: Optional[Callable[[], str]] = None,
) -> T:
    """
    Allocate a short id by inserting the owning row until one sticks.

    Args:
        db: Database session; each attempt is committed or rolled back here
        build: Creates the (unsaved) row graph for a given candidate id
        max_attempts: Collision retry cap
        generator: Candidate source, generate_short_id when omitted

    Returns:
        The committed object returned by `build`

    Raises:
        ConflictError: A unique constraint other than short_id was violated
        ShortIdAllocationError: Every attempt collided
    """
    generator = generator or generate_short_id
    for attempt in range(1, max_attempts + 1):
        candidate = generator()
        obj = build(candidate)
        db.add(obj)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            if not is_short_id_collision(exc):
                logger.error("Unique constraint violation while creating shipment: %s", exc.orig)
                raise ConflictError(
                    "Database error: unique constraint violation.",
                    details={"constraint": str(exc.orig)}
                ) from exc
            logger.warning(
                "short_id collision (%s), attempt %d/%d", candidate, attempt, max_attempts
            )
            continue
        return obj

    logger.error("Max attempts (%d) reached for generating a unique short_id", max_attempts)
    raise ShortIdAllocationError(max_attempts)
