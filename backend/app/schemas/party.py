"""
Pydantic schemas for the party guest list.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class PartyHost(BaseModel):
    id: str
    name: Optional[str] = None
    pass_url: str
    checked_in: bool


class PartyMember(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    status: str
    checked_in: bool


class PartyView(BaseModel):
    host: Optional[PartyHost] = None
    guests: list[PartyMember]
    invite_url: Optional[str] = None
    total_joined: int
    party_size: int


class PartyGuestResponse(BaseModel):
    id: str
    booking_id: str
    guest_name: Optional[str] = None
    guest_email: str
    guest_phone: Optional[str] = None
    status: str
    is_host: bool
    checked_in: bool
    invite_token: str
    created_at: datetime

    model_config = {"from_attributes": True}


class GuestListSummary(BaseModel):
    total: int
    invited: int
    joined: int
    checked_in: int


class GuestListResponse(BaseModel):
    guests: list[PartyGuestResponse]
    summary: GuestListSummary


class GuestCreate(BaseModel):
    guest_name: str = Field(..., min_length=1, max_length=255)
    guest_email: EmailStr
    guest_phone: Optional[str] = Field(None, max_length=50)

    model_config = {"str_strip_whitespace": True}

    @field_validator("guest_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class GuestAddResponse(BaseModel):
    success: bool = True
    guest: PartyGuestResponse
    join_url: str
    message: str


class GuestRemove(BaseModel):
    guest_id: str = Field(..., min_length=1)


class GuestRemoveResponse(BaseModel):
    success: bool = True
    message: str


class PartyJoin(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)


class PartyJoinResponse(BaseModel):
    success: bool = True
    already_joined: bool = False
    guest_id: str
    registration_id: Optional[str] = None
    qr_token: Optional[str] = None
    message: str


class PartyEventInfo(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None
    date: str
    time: str
    start_time: Optional[datetime] = None
    is_past: bool
    venue_name: str


class PartyTableInfo(BaseModel):
    booking_id: str
    host_name: Optional[str] = None
    party_size: int
    table_name: str
    zone_name: str


class PassGuest(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    is_host: bool
    checked_in: bool
    checked_in_at: Optional[datetime] = None


class GuestPassResponse(BaseModel):
    """QR pass for a joined party guest, scanned at the door."""

    qr_token: str
    registration_id: str
    booking_status: str
    guest: PassGuest
    table: PartyTableInfo
    event: PartyEventInfo


class InviteGuest(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    status: str
    is_host: bool
    has_joined: bool
    checked_in: bool


class InvitePreviewResponse(BaseModel):
    guest: InviteGuest
    table: PartyTableInfo
    event: PartyEventInfo
    joined_count: int
    spots_remaining: int
    is_party_full: bool
