"""
Role grants and the rows written by post-commit side effects:
XP ledger, notifications, outbox events and the activity log.
"""

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint

from app.db.base import Base, TimestampMixin, new_uuid


class UserRole(Base, TimestampMixin):
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    # superadmin, door_staff, venue_admin, event_organizer, promoter, attendee
    role = Column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_role"),
    )


class XpLedger(Base, TimestampMixin):
    __tablename__ = "xp_ledger"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    event_id = Column(String(36), nullable=True)
    amount = Column(Integer, nullable=False)
    source_type = Column(String(50), nullable=False)
    role_context = Column(String(50), nullable=True)
    description = Column(String(500), nullable=True)


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(String(2000), nullable=False)
    link = Column(String(1000), nullable=True)
    details = Column("metadata", JSON, nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)


class OutboxEvent(Base, TimestampMixin):
    __tablename__ = "outbox_events"

    id = Column(String(36), primary_key=True, default=new_uuid)
    event_name = Column(String(100), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    published_at = Column(DateTime(timezone=True), nullable=True)


class ActivityLog(Base, TimestampMixin):
    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=True)
    details = Column("metadata", JSON, nullable=True)
