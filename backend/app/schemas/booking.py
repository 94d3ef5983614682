"""
Pydantic schemas for table booking request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.schemas.event import EventSummary
from app.schemas.party import PartyView


class BookingCreate(BaseModel):
    table_id: str = Field(..., min_length=1)
    guest_name: str = Field(..., min_length=1, max_length=255)
    guest_email: EmailStr
    guest_whatsapp: str = Field(..., min_length=1, max_length=50)
    special_requests: Optional[str] = Field(None, max_length=2000)

    model_config = {"str_strip_whitespace": True}

    @field_validator("guest_email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class PaymentInfo(BaseModel):
    payment_url: str
    expires_at: datetime
    invoice_number: str
    doku_enabled: bool = True


class BookingSummary(BaseModel):
    id: str
    status: str
    payment_status: str
    table_name: str
    zone_name: Optional[str] = None
    minimum_spend: float
    deposit_required: float
    party_size: int
    booking_url: str


class BookingCreateResponse(BaseModel):
    success: bool = True
    booking: BookingSummary
    event: EventSummary
    payment: Optional[PaymentInfo] = None
    message: str


class BookingDetail(BaseModel):
    id: str
    status: str
    payment_status: str
    guest_name: str
    guest_email: str
    guest_whatsapp: str
    party_size: int
    special_requests: Optional[str] = None
    minimum_spend: float
    deposit_required: float
    deposit_received: bool
    created_at: datetime
    confirmed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TableInfo(BaseModel):
    id: str
    name: str
    zone_name: Optional[str] = None
    capacity: int


class PaymentTransactionInfo(BaseModel):
    invoice_number: str
    payment_url: Optional[str] = None
    status: str
    amount: float
    currency: str
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class VenuePaymentOptions(BaseModel):
    doku_enabled: bool = False
    manual_payment_enabled: bool = False
    manual_payment_instructions: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_name: Optional[str] = None
    bank_account_number: Optional[str] = None


class BookingDetailResponse(BaseModel):
    booking: BookingDetail
    event: EventSummary
    table: TableInfo
    payment: Optional[PaymentTransactionInfo] = None
    venue_payment: VenuePaymentOptions
    party: Optional[PartyView] = None
