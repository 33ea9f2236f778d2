"""
Location Pydantic schemas.
"""

from pydantic import EmailStr, Field
from datetime import datetime
from typing import List
from backend.app.schemas.shipment import CamelModel


class LocationCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    recipient_emails: List[EmailStr] = Field(default_factory=list)


class LocationResponse(CamelModel):
    id: str
    name: str
    recipient_emails: List[str]
    created_at: datetime
