"""
Shipment Pydantic schemas.

Request and response models for shipment creation, receipt and
verification. JSON field names are camelCase.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Any, List, Optional
from backend.app.models.shipment_enums import ShipmentStatus

SIGNATURE_PREFIX = "data:image/png;base64,"


class CamelModel(BaseModel):
    """Base for payloads exchanged with clients."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
        str_strip_whitespace = True


# Requests

class DeviceCreate(CamelModel):
    """A manifested device."""
    serial_number: str = Field(..., min_length=1, max_length=255, description="Device serial number")
    asset_tag: Optional[str] = Field(None, max_length=255)
    model: Optional[str] = Field(None, max_length=255)


class ShipmentCreate(CamelModel):
    """Schema for creating a shipment through the programmatic API."""
    sender_name: str = Field(..., min_length=1, max_length=255)
    sender_email: EmailStr
    destination_identifier: str = Field(..., min_length=1, description="Location id or name")
    client_reference_id: Optional[str] = None
    carrier: Optional[str] = Field(None, max_length=100)
    tracking_number: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    devices: List[DeviceCreate] = Field(..., min_length=1, description="At least one device is required")
    notify_emails: List[str] = Field(default_factory=list, description="Comma-separated string or list")

    @field_validator("notify_emails", mode="before")
    @classmethod
    def split_notify_emails(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, list):
            raise ValueError("notifyEmails must be a string or a list of strings")
        return [e.strip() for e in value if isinstance(e, str) and e.strip()]


class ExtraDevice(CamelModel):
    """A device found in the box but missing from the manifest."""
    serial_number: str = Field(..., min_length=1, max_length=255)
    asset_tag: Optional[str] = Field(None, max_length=255)
    model: Optional[str] = Field(None, max_length=255)


class ReceiveRequest(CamelModel):
    """Public receipt submitted by the recipient."""
    recipient_name: str = Field(..., min_length=1, max_length=255)
    signature: str = Field(..., description="PNG signature as a base64 data URL")
    received_serials: List[str] = Field(default_factory=list)
    extra_devices: List[ExtraDevice] = Field(default_factory=list)

    @field_validator("signature")
    @classmethod
    def check_signature(cls, value: str) -> str:
        if not value.startswith(SIGNATURE_PREFIX):
            raise ValueError("Invalid signature format.")
        return value

    @field_validator("received_serials")
    @classmethod
    def drop_blank_serials(cls, value: List[str]) -> List[str]:
        return [s.strip() for s in value if s.strip()]


class VerifyRequest(CamelModel):
    """Admin confirmation of which devices were physically verified."""
    verified_device_ids: List[str] = Field(..., min_length=1, description="At least one device must be verified.")


class SignoffRequest(CamelModel):
    recipient_name: str = Field(..., min_length=1, max_length=255)
    signature_data_url: str = Field(..., min_length=1)


class CheckInRequest(CamelModel):
    serial_number: str = Field(..., min_length=1, max_length=255)


# Responses

class DeviceResponse(CamelModel):
    id: str
    serial_number: str
    asset_tag: Optional[str]
    model: Optional[str]
    is_checked_in: bool
    checked_in_at: Optional[datetime]
    is_extra_device: bool


class LocationSummary(CamelModel):
    id: str
    name: str


class ShipmentResponse(CamelModel):
    """Full shipment representation for API clients and admins."""
    id: str
    short_id: str
    status: ShipmentStatus
    sender_name: str
    sender_email: str
    carrier: Optional[str]
    tracking_number: Optional[str]
    client_reference_id: Optional[str]
    notes: Optional[str]
    recipient_name: Optional[str]
    received_at: Optional[datetime]
    notify_emails: List[str]
    location: LocationSummary
    devices: List[DeviceResponse]
    created_at: datetime
    updated_at: datetime


class ShipmentListResponse(CamelModel):
    shipments: List[ShipmentResponse]
    total: int
    page: int
    page_size: int


class PublicDevice(CamelModel):
    id: str
    serial_number: str
    asset_tag: Optional[str]
    model: Optional[str]


class PublicLocation(CamelModel):
    name: str


class PublicShipmentResponse(CamelModel):
    """What the receiving page may see: no sender email, signature or check-in flags."""
    id: str
    short_id: str
    sender_name: str
    status: ShipmentStatus
    created_at: datetime
    location: PublicLocation
    devices: List[PublicDevice]


class ReceiveResponse(CamelModel):
    status: ShipmentStatus


class VerifyResponse(CamelModel):
    message: str
    verified_devices_count: int


class SignoffResponse(CamelModel):
    status: ShipmentStatus
    timestamp: datetime


class CheckInResponse(CamelModel):
    status: str
    serial_number: str
    timestamp: datetime
