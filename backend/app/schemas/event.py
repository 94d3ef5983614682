"""
Pydantic schemas for event and direct booking-link views.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class EventSummary(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None

    model_config = {"from_attributes": True}


class EventDetail(EventSummary):
    start_time: datetime
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    currency: str
    venue_name: Optional[str] = None


class TableOption(BaseModel):
    id: str
    name: str
    zone_name: Optional[str] = None
    capacity: int
    minimum_spend: float
    deposit: float
    party_size: int


class BookingLinkInfo(BaseModel):
    code: str
    table_id: Optional[str] = None
    expires_at: Optional[datetime] = None


class BookingLinkResponse(BaseModel):
    link: BookingLinkInfo
    event: EventDetail
    tables: list[TableOption]
    cached: bool = False
