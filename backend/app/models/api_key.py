"""
API Key database model.

Only a salted hash of each secret is stored.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class ApiKey(Base):
    """Programmatic client credential. Revocation is a soft deactivate."""
    __tablename__ = "api_keys"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    key_hash = Column(String(255), unique=True, nullable=False)
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ApiKey(id={self.id}, description='{self.description}', active={self.is_active})>"
