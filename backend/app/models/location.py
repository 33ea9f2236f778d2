"""
Location database model.

A location is a destination site that receives shipments.
"""

import uuid
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Location(Base):
    """Destination site with the addresses notified about its shipments."""
    __tablename__ = "locations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), unique=True, nullable=False, index=True)
    recipient_emails = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    shipments = relationship("Shipment", back_populates="location", passive_deletes=True)

    def __repr__(self):
        return f"<Location(id={self.id}, name='{self.name}')>"
