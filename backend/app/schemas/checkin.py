"""
Pydantic schemas for check-in and pass tokens.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, model_validator


class PassTokenPayload(BaseModel):
    registration_id: str
    event_id: str
    attendee_id: str
    iat: int
    exp: int


class CheckinRequest(BaseModel):
    qr_token: Optional[str] = None
    registration_id: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_credential(self) -> "CheckinRequest":
        if bool(self.qr_token) == bool(self.registration_id):
            raise ValueError("Either qr_token or registration_id is required")
        return self


class CheckinRecord(BaseModel):
    id: str
    registration_id: str
    event_id: str
    checked_in_by: str
    checked_in_at: datetime
    method: str

    model_config = {"from_attributes": True}


class AttendeeInfo(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


class CheckinResponse(BaseModel):
    success: bool = True
    duplicate: bool
    checkin: CheckinRecord
    attendee_name: str
    attendee_id: str
    registration_id: str
    attendee: Optional[AttendeeInfo] = None
    message: str
