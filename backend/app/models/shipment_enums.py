"""
Shipment Status Enumeration.
"""

import enum


class ShipmentStatus(str, enum.Enum):
    """
    Shipment status enumeration.

    Status flow:
        PENDING → IN_TRANSIT → DELIVERED → RECEIVING → RECEIVED → COMPLETED
        CANCELLED is reserved as a terminal state; nothing transitions into it yet.
    """
    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    RECEIVING = "RECEIVING"
    RECEIVED = "RECEIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({ShipmentStatus.COMPLETED, ShipmentStatus.CANCELLED})
