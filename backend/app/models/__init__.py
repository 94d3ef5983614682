from app.models.venue import Venue, VenueUser, TableZone, VenueTable, VenuePaymentSettings
from app.models.organizer import Organizer, OrganizerUser, Promoter
from app.models.event import Event, EventTableAvailability, TableBookingLink, EventDoorStaff
from app.models.attendee import Attendee, Registration, Checkin
from app.models.booking import TableBooking, PaymentTransaction
from app.models.party import TablePartyGuest
from app.models.activity import UserRole, XpLedger, Notification, OutboxEvent, ActivityLog

__all__ = [
    "Venue", "VenueUser", "TableZone", "VenueTable", "VenuePaymentSettings",
    "Organizer", "OrganizerUser", "Promoter",
    "Event", "EventTableAvailability", "TableBookingLink", "EventDoorStaff",
    "Attendee", "Registration", "Checkin",
    "TableBooking", "PaymentTransaction",
    "TablePartyGuest",
    "UserRole", "XpLedger", "Notification", "OutboxEvent", "ActivityLog",
]
