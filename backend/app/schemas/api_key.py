"""
API Key Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.schemas.shipment import CamelModel


class ApiKeyCreate(CamelModel):
    description: str = Field(..., min_length=1, max_length=255)


class ApiKeyUpdate(CamelModel):
    is_active: bool


class ApiKeyResponse(CamelModel):
    """Stored key metadata. The hash is never part of a response."""
    id: str
    description: Optional[str]
    is_active: bool
    created_at: datetime
    last_used_at: Optional[datetime]


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Returned once, at creation, with the only copy of the plaintext secret."""
    api_key: str


class ApiKeyIdentity(BaseModel):
    """The authenticated caller of a programmatic request."""
    id: str
    description: Optional[str] = None

    @property
    def label(self) -> str:
        return self.description or f"Key ID: {self.id}"
