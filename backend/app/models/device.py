"""
Device database model.

Devices belong to exactly one shipment. Serial numbers are not unique at the
storage layer; they are matched per shipment.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from backend.app.db.session import Base


class Device(Base):
    """
    Device model.

    checked_in_at is set if and only if is_checked_in is true; every writer
    sets both in the same statement.
    """
    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    shipment_id = Column(String(36), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)

    serial_number = Column(String(255), nullable=False)
    asset_tag = Column(String(255), nullable=True)
    model = Column(String(255), nullable=True)

    is_checked_in = Column(Boolean, default=False, nullable=False)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)

    # Present at receipt but missing from the original manifest
    is_extra_device = Column(Boolean, default=False, nullable=False)

    shipment = relationship("Shipment", back_populates="devices")

    __table_args__ = (
        Index("ix_devices_shipment_serial", "shipment_id", "serial_number"),
    )

    def __repr__(self):
        return f"<Device(id={self.id}, serial='{self.serial_number}', checked_in={self.is_checked_in})>"
