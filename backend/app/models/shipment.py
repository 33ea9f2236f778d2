"""
Shipment database model.

A shipment carries a manifest of devices from a sender to a location and is
addressed publicly by its 6-letter short id.
"""

import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.shipment_enums import ShipmentStatus


class Shipment(Base):
    """
    Shipment model.

    short_id is unique and never rewritten after insert; the unique index is
    the only arbiter of collisions during allocation.
    """
    __tablename__ = "shipments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    short_id = Column(String(6), unique=True, nullable=False, index=True)

    status = Column(Enum(ShipmentStatus, name="shipment_status"), default=ShipmentStatus.PENDING, nullable=False, index=True)

    # Sender
    sender_name = Column(String(255), nullable=False)
    sender_email = Column(String(255), nullable=False)

    # Transport metadata
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(255), nullable=True)
    client_reference_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Receipt
    recipient_name = Column(String(255), nullable=True)
    recipient_email = Column(String(255), nullable=True)
    recipient_signature = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)

    notify_emails = Column(JSON, nullable=False, default=list)

    # Ownership
    location_id = Column(String(36), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True)
    api_key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="SET NULL"), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    location = relationship("Location", back_populates="shipments")
    devices = relationship(
        "Device",
        back_populates="shipment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Device.serial_number",
    )
    email_logs = relationship("EmailLog", back_populates="shipment", passive_deletes=True)

    def __repr__(self):
        return f"<Shipment(id={self.id}, short_id='{self.short_id}', status='{self.status.value}')>"
