"""
Attendees, their event registrations and check-ins.

Key design decisions:
- Unique constraint on checkins.registration_id is the idempotency key for
  check-in; a violation means a concurrent request already checked in
- Registration is one per (attendee, event) and is created on demand
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, CheckConstraint

from app.db.base import Base, TimestampMixin, new_uuid, utcnow


class Attendee(Base, TimestampMixin):
    __tablename__ = "attendees"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    user_id = Column(String(36), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Attendee(id={self.id}, email={self.email})>"


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(String(36), primary_key=True, default=new_uuid)
    attendee_id = Column(String(36), ForeignKey("attendees.id"), nullable=False)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    source = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="registered")
    referral_promoter_id = Column(String(36), ForeignKey("promoters.id"), nullable=True, index=True)
    registered_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("attendee_id", "event_id", name="uq_registration_attendee_event"),
        CheckConstraint("status IN ('registered', 'cancelled')", name="check_registration_status"),
    )


class Checkin(Base, TimestampMixin):
    __tablename__ = "checkins"

    id = Column(String(36), primary_key=True, default=new_uuid)
    registration_id = Column(String(36), ForeignKey("registrations.id"), nullable=False)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    checked_in_by = Column(String(36), nullable=False)
    checked_in_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    method = Column(String(20), nullable=False, default="qr_code")  # qr_code, manual
    undo_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # One check-in per registration
        UniqueConstraint("registration_id", name="uq_checkin_registration"),
    )
