"""
Dead letter queue.

One row per device lock/unlock or notification email that failed after its
shipment change had already committed. Rows are kept after replay or
archival so the history of a shipment's failures stays visible.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
import enum


class DLQStatus(str, enum.Enum):
    FAILED = "FAILED"
    RETRYING = "RETRYING"
    PROCESSED = "PROCESSED"
    ARCHIVED = "ARCHIVED"


class DeadLetterQueue(Base):
    __tablename__ = "dead_letter_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # device_lock, device_unlock, new_shipment_notification, ...
    task_name = Column(String(100), nullable=False, index=True)
    # Shipment the side effect belonged to, if any
    short_id = Column(String(6), nullable=True, index=True)
    error_message = Column(Text, nullable=False)
    # Enough to replay: serial_number and/or shipment_id
    payload = Column(JSON, nullable=True)

    status = Column(Enum(DLQStatus, name="dlq_status"), default=DLQStatus.FAILED, nullable=False, index=True)
    retry_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<DeadLetter {self.id} {self.task_name} short_id={self.short_id} {self.status}>"
