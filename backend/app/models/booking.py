"""
Table bookings and their payment transactions.

Key design decisions:
- At most one non-cancelled booking per (event, table, guest_email) is
  enforced by a pre-insert check in the booking workflow, not by a constraint
- Money columns snapshot the effective values at booking time
- doku_invoice_id is unique so a webhook can never match two transactions
"""

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, CheckConstraint,
)

from app.db.base import Base, TimestampMixin, new_uuid


class TableBooking(Base, TimestampMixin):
    __tablename__ = "table_bookings"

    id = Column(String(36), primary_key=True, default=new_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    table_id = Column(String(36), ForeignKey("venue_tables.id"), nullable=False)
    attendee_id = Column(String(36), ForeignKey("attendees.id"), nullable=True, index=True)

    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_whatsapp = Column(String(50), nullable=False)
    party_size = Column(Integer, nullable=False)
    special_requests = Column(String(2000), nullable=True)

    promoter_id = Column(String(36), ForeignKey("promoters.id"), nullable=True)
    referral_code = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="not_required")
    minimum_spend = Column(Numeric(12, 2), nullable=False, default=0)
    deposit_required = Column(Numeric(12, 2), nullable=False, default=0)
    deposit_received = Column(Boolean, nullable=False, default=False)
    deposit_received_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    payment_transaction_id = Column(String(36), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')", name="check_table_booking_status"
        ),
        CheckConstraint(
            "payment_status IN ('not_required', 'pending', 'paid', 'failed')",
            name="check_table_booking_payment_status",
        ),
        Index("ix_table_bookings_duplicate_guard", "event_id", "table_id", "guest_email"),
    )

    def __repr__(self) -> str:
        return f"<TableBooking(id={self.id}, event={self.event_id}, table={self.table_id}, status={self.status})>"


class PaymentTransaction(Base, TimestampMixin):
    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=False, index=True)
    reference_type = Column(String(50), nullable=False, default="table_booking")
    reference_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    doku_invoice_id = Column(String(64), nullable=False, unique=True)
    doku_payment_url = Column(String(1000), nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending, processing, completed, failed
    expires_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(100), nullable=True)
    webhook_received_at = Column(DateTime(timezone=True), nullable=True)
    webhook_payload = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentTransaction(id={self.id}, invoice={self.doku_invoice_id}, status={self.status})>"
