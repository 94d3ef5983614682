from app.schemas.event import EventSummary, EventDetail, TableOption, BookingLinkInfo, BookingLinkResponse
from app.schemas.party import (
    PartyView, GuestListResponse, GuestCreate, GuestAddResponse, GuestRemove, GuestRemoveResponse,
    PartyJoin, PartyJoinResponse, GuestPassResponse, InvitePreviewResponse,
)
from app.schemas.booking import BookingCreate, BookingCreateResponse, BookingDetailResponse, PaymentInfo
from app.schemas.checkin import CheckinRequest, CheckinResponse, PassTokenPayload
from app.schemas.payment import WebhookAck

__all__ = [
    "EventSummary", "EventDetail", "TableOption", "BookingLinkInfo", "BookingLinkResponse",
    "PartyView", "GuestListResponse", "GuestCreate", "GuestAddResponse", "GuestRemove",
    "GuestRemoveResponse", "PartyJoin", "PartyJoinResponse", "GuestPassResponse", "InvitePreviewResponse",
    "BookingCreate", "BookingCreateResponse", "BookingDetailResponse", "PaymentInfo",
    "CheckinRequest", "CheckinResponse", "PassTokenPayload",
    "WebhookAck",
]
