"""
Events and the per-event table configuration.

Key design decisions:
- Events are read-only to the booking core; organizer tooling owns them
- EventTableAvailability is zero-or-one per (event, table); a missing row
  means "available with table defaults"
- Direct booking links bypass the event's booking mode while active
"""

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String,
    UniqueConstraint, CheckConstraint,
)

from app.db.base import Base, TimestampMixin, new_uuid


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_uuid)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=True, index=True)
    organizer_id = Column(String(36), ForeignKey("organizers.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    timezone = Column(String(64), nullable=True)
    status = Column(String(20), nullable=False, default="draft")
    table_booking_mode = Column(String(20), nullable=False, default="disabled")
    currency = Column(String(3), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'published', 'ended', 'cancelled')", name="check_event_status"
        ),
        CheckConstraint(
            "table_booking_mode IN ('disabled', 'promoter_only', 'open')",
            name="check_event_table_booking_mode",
        ),
        Index("ix_events_start_time", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, status={self.status})>"


class EventTableAvailability(Base, TimestampMixin):
    __tablename__ = "event_table_availability"

    id = Column(String(36), primary_key=True, default=new_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    table_id = Column(String(36), ForeignKey("venue_tables.id"), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    override_minimum_spend = Column(Numeric(12, 2), nullable=True)
    override_deposit = Column(Numeric(12, 2), nullable=True)
    override_capacity = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("event_id", "table_id", name="uq_event_table_availability"),
    )


class TableBookingLink(Base, TimestampMixin):
    __tablename__ = "table_booking_links"

    id = Column(String(36), primary_key=True, default=new_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    # Pinned table; null means any table of the event's venue
    table_id = Column(String(36), ForeignKey("venue_tables.id"), nullable=True)
    code = Column(String(64), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)


class EventDoorStaff(Base, TimestampMixin):
    __tablename__ = "event_door_staff"

    id = Column(String(36), primary_key=True, default=new_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")  # active, revoked

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_door_staff"),
    )
