"""
Email Log database model.

Append-only record of notification emails that were handed to the provider.
"""

import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base


class EmailType(str, enum.Enum):
    NEW_SHIPMENT = "NEW_SHIPMENT"
    SHIPMENT_RECEIVED = "SHIPMENT_RECEIVED"


class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Nulled rather than cascaded so shipment deletion keeps the history
    shipment_id = Column(String(36), ForeignKey("shipments.id", ondelete="SET NULL"), nullable=True, index=True)

    email_type = Column(String(50), nullable=False, index=True)
    recipient = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=False)
    html_content = Column(Text, nullable=False)

    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    shipment = relationship("Shipment", back_populates="email_logs")

    def __repr__(self):
        return f"<EmailLog(id={self.id}, type='{self.email_type}', to='{self.recipient}')>"
