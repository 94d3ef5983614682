"""
Party guest list attached to a table booking.

Exactly one host row per booking is maintained by the party service, never
by a constraint. Removal is a soft delete via status="removed".
"""

import secrets

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, CheckConstraint

from app.db.base import Base, TimestampMixin, new_uuid


def new_invite_token() -> str:
    return secrets.token_urlsafe(24)


class TablePartyGuest(Base, TimestampMixin):
    __tablename__ = "table_party_guests"

    id = Column(String(36), primary_key=True, default=new_uuid)
    booking_id = Column(String(36), ForeignKey("table_bookings.id"), nullable=False)
    attendee_id = Column(String(36), ForeignKey("attendees.id"), nullable=True, index=True)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(50), nullable=True)
    is_host = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="invited")
    invite_token = Column(String(64), nullable=False, unique=True, default=new_invite_token)
    qr_token = Column(String(2000), nullable=True)
    checked_in = Column(Boolean, nullable=False, default=False)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    invite_sent_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('invited', 'joined', 'declined', 'removed')", name="check_party_guest_status"
        ),
        Index("ix_table_party_guests_booking_email", "booking_id", "guest_email"),
    )

    def __repr__(self) -> str:
        return f"<TablePartyGuest(id={self.id}, booking={self.booking_id}, host={self.is_host}, status={self.status})>"
