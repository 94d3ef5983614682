"""Initial schema: venues, events, table bookings, party guests, check-ins.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _money(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.Numeric(12, 2), nullable=True)
    return sa.Column(name, sa.Numeric(12, 2), nullable=False, server_default=sa.text("0"))


AWARD_XP_FUNCTION = """
CREATE OR REPLACE FUNCTION award_xp(
    p_user_id varchar,
    p_amount integer,
    p_source_type varchar,
    p_role_context varchar,
    p_event_id varchar,
    p_description varchar
) RETURNS void AS $$
BEGIN
    INSERT INTO xp_ledger (id, user_id, event_id, amount, source_type, role_context, description)
    VALUES (gen_random_uuid()::text, p_user_id, p_event_id, p_amount, p_source_type, p_role_context, p_description);
END;
$$ LANGUAGE plpgsql;
"""


def upgrade() -> None:
    # Venue catalog
    op.create_table(
        "venues",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True, unique=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'IDR'")),
        sa.Column("created_by", sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_venues_created_by", "venues", ["created_by"])

    op.create_table(
        "venue_users",
        _id(),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default=sa.text("'staff'")),
        *_timestamps(),
        sa.UniqueConstraint("venue_id", "user_id", name="uq_venue_user"),
    )
    op.create_index("ix_venue_users_venue_id", "venue_users", ["venue_id"])
    op.create_index("ix_venue_users_user_id", "venue_users", ["user_id"])

    op.create_table(
        "table_zones",
        _id(),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_table_zones_venue_id", "table_zones", ["venue_id"])

    op.create_table(
        "venue_tables",
        _id(),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("zone_id", sa.String(36), sa.ForeignKey("table_zones.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        _money("minimum_spend"),
        _money("deposit_amount"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_table_capacity_positive"),
    )
    op.create_index("ix_venue_tables_venue_id", "venue_tables", ["venue_id"])

    op.create_table(
        "venue_payment_settings",
        _id(),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.id"), nullable=False, unique=True),
        sa.Column("doku_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("doku_client_id", sa.String(255), nullable=True),
        sa.Column("doku_secret_key", sa.String(255), nullable=True),
        sa.Column("doku_environment", sa.String(20), nullable=False, server_default=sa.text("'sandbox'")),
        sa.Column("payment_expiry_hours", sa.Integer(), nullable=False, server_default=sa.text("24")),
        sa.Column("auto_confirm_on_payment", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("manual_payment_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("manual_payment_instructions", sa.String(2000), nullable=True),
        sa.Column("bank_name", sa.String(255), nullable=True),
        sa.Column("bank_account_name", sa.String(255), nullable=True),
        sa.Column("bank_account_number", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("doku_environment IN ('sandbox', 'production')", name="check_doku_environment"),
    )

    # Organizers and promoters
    op.create_table(
        "organizers",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_by", sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_organizers_created_by", "organizers", ["created_by"])

    op.create_table(
        "organizer_users",
        _id(),
        sa.Column("organizer_id", sa.String(36), sa.ForeignKey("organizers.id"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("organizer_id", "user_id", name="uq_organizer_user"),
    )
    op.create_index("ix_organizer_users_organizer_id", "organizer_users", ["organizer_id"])
    op.create_index("ix_organizer_users_user_id", "organizer_users", ["user_id"])

    op.create_table(
        "promoters",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_by", sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_promoters_created_by", "promoters", ["created_by"])

    # Events
    op.create_table(
        "events",
        _id(),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.id"), nullable=True),
        sa.Column("organizer_id", sa.String(36), sa.ForeignKey("organizers.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("table_booking_mode", sa.String(20), nullable=False, server_default=sa.text("'disabled'")),
        sa.Column("currency", sa.String(3), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('draft', 'published', 'ended', 'cancelled')", name="check_event_status"),
        sa.CheckConstraint(
            "table_booking_mode IN ('disabled', 'promoter_only', 'open')",
            name="check_event_table_booking_mode",
        ),
    )
    op.create_index("ix_events_venue_id", "events", ["venue_id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    op.create_index("ix_events_slug", "events", ["slug"])
    op.create_index("ix_events_start_time", "events", ["start_time"])

    op.create_table(
        "event_table_availability",
        _id(),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("table_id", sa.String(36), sa.ForeignKey("venue_tables.id"), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _money("override_minimum_spend", nullable=True),
        _money("override_deposit", nullable=True),
        sa.Column("override_capacity", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "table_id", name="uq_event_table_availability"),
    )
    op.create_index("ix_event_table_availability_event_id", "event_table_availability", ["event_id"])

    op.create_table(
        "table_booking_links",
        _id(),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("table_id", sa.String(36), sa.ForeignKey("venue_tables.id"), nullable=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_table_booking_links_event_id", "table_booking_links", ["event_id"])

    op.create_table(
        "event_door_staff",
        _id(),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_door_staff"),
    )
    op.create_index("ix_event_door_staff_event_id", "event_door_staff", ["event_id"])
    op.create_index("ix_event_door_staff_user_id", "event_door_staff", ["user_id"])

    # Attendees, registrations and check-ins
    op.create_table(
        "attendees",
        _id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("user_id", sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_attendees_email", "attendees", ["email"])
    op.create_index("ix_attendees_user_id", "attendees", ["user_id"])

    op.create_table(
        "registrations",
        _id(),
        sa.Column("attendee_id", sa.String(36), sa.ForeignKey("attendees.id"), nullable=False),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'registered'")),
        sa.Column("referral_promoter_id", sa.String(36), sa.ForeignKey("promoters.id"), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("attendee_id", "event_id", name="uq_registration_attendee_event"),
        sa.CheckConstraint("status IN ('registered', 'cancelled')", name="check_registration_status"),
    )
    op.create_index("ix_registrations_event_id", "registrations", ["event_id"])
    op.create_index("ix_registrations_referral_promoter_id", "registrations", ["referral_promoter_id"])

    # UNIQUE ON registration_id: the idempotency key for check-in.
    # A concurrent second scan fails here and is answered as a duplicate.
    op.create_table(
        "checkins",
        _id(),
        sa.Column("registration_id", sa.String(36), sa.ForeignKey("registrations.id"), nullable=False),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("checked_in_by", sa.String(36), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("method", sa.String(20), nullable=False, server_default=sa.text("'qr_code'")),
        sa.Column("undo_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("registration_id", name="uq_checkin_registration"),
    )
    op.create_index("ix_checkins_event_id", "checkins", ["event_id"])

    # Table bookings
    op.create_table(
        "table_bookings",
        _id(),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("table_id", sa.String(36), sa.ForeignKey("venue_tables.id"), nullable=False),
        sa.Column("attendee_id", sa.String(36), sa.ForeignKey("attendees.id"), nullable=True),
        sa.Column("guest_name", sa.String(255), nullable=False),
        sa.Column("guest_email", sa.String(255), nullable=False),
        sa.Column("guest_whatsapp", sa.String(50), nullable=False),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("special_requests", sa.String(2000), nullable=True),
        sa.Column("promoter_id", sa.String(36), sa.ForeignKey("promoters.id"), nullable=True),
        sa.Column("referral_code", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'not_required'")),
        _money("minimum_spend"),
        _money("deposit_required"),
        sa.Column("deposit_received", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deposit_received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_transaction_id", sa.String(36), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_table_booking_status"),
        sa.CheckConstraint(
            "payment_status IN ('not_required', 'pending', 'paid', 'failed')",
            name="check_table_booking_payment_status",
        ),
    )
    op.create_index("ix_table_bookings_event_id", "table_bookings", ["event_id"])
    op.create_index("ix_table_bookings_attendee_id", "table_bookings", ["attendee_id"])
    # Serves the pre-insert duplicate check; deliberately not unique
    op.create_index(
        "ix_table_bookings_duplicate_guard", "table_bookings", ["event_id", "table_id", "guest_email"]
    )

    op.create_table(
        "payment_transactions",
        _id(),
        sa.Column("venue_id", sa.String(36), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("reference_type", sa.String(50), nullable=False, server_default=sa.text("'table_booking'")),
        sa.Column("reference_id", sa.String(36), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("doku_invoice_id", sa.String(64), nullable=False, unique=True),
        sa.Column("doku_payment_url", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(100), nullable=True),
        sa.Column("webhook_received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("webhook_payload", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payment_transactions_venue_id", "payment_transactions", ["venue_id"])
    op.create_index("ix_payment_transactions_reference_id", "payment_transactions", ["reference_id"])

    op.create_table(
        "table_party_guests",
        _id(),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("table_bookings.id"), nullable=False),
        sa.Column("attendee_id", sa.String(36), sa.ForeignKey("attendees.id"), nullable=True),
        sa.Column("guest_name", sa.String(255), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=False),
        sa.Column("guest_phone", sa.String(50), nullable=True),
        sa.Column("is_host", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'invited'")),
        sa.Column("invite_token", sa.String(64), nullable=False, unique=True),
        sa.Column("qr_token", sa.String(2000), nullable=True),
        sa.Column("checked_in", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invite_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('invited', 'joined', 'declined', 'removed')", name="check_party_guest_status"),
    )
    op.create_index("ix_table_party_guests_attendee_id", "table_party_guests", ["attendee_id"])
    op.create_index(
        "ix_table_party_guests_booking_email", "table_party_guests", ["booking_id", "guest_email"]
    )

    # Roles and side-effect sinks
    op.create_table(
        "user_roles",
        _id(),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "role", name="uq_user_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    op.create_table(
        "xp_ledger",
        _id(),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("event_id", sa.String(36), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("source_type", sa.String(50), nullable=False),
        sa.Column("role_context", sa.String(50), nullable=True),
        sa.Column("description", sa.String(500), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_xp_ledger_user_id", "xp_ledger", ["user_id"])

    op.create_table(
        "notifications",
        _id(),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.String(2000), nullable=False),
        sa.Column("link", sa.String(1000), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "outbox_events",
        _id(),
        sa.Column("event_name", sa.String(100), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_outbox_events_event_name", "outbox_events", ["event_name"])

    op.create_table(
        "activity_logs",
        _id(),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])

    op.execute(AWARD_XP_FUNCTION)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS award_xp(varchar, integer, varchar, varchar, varchar, varchar)")
    for table in (
        "activity_logs",
        "outbox_events",
        "notifications",
        "xp_ledger",
        "user_roles",
        "table_party_guests",
        "payment_transactions",
        "table_bookings",
        "checkins",
        "registrations",
        "attendees",
        "event_door_staff",
        "table_booking_links",
        "event_table_availability",
        "events",
        "promoters",
        "organizer_users",
        "organizers",
        "venue_payment_settings",
        "venue_tables",
        "table_zones",
        "venue_users",
        "venues",
    ):
        op.drop_table(table)
