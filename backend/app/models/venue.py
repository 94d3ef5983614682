"""
Venue catalog: venues, their staff, zones, tables and payment settings.

Tables and settings are maintained by venue admin tooling; the booking
workflow only reads them.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, UniqueConstraint, CheckConstraint

from app.db.base import Base, TimestampMixin, new_uuid


class Venue(Base, TimestampMixin):
    __tablename__ = "venues"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=True)
    currency = Column(String(3), nullable=False, default="IDR")
    created_by = Column(String(36), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name})>"


class VenueUser(Base, TimestampMixin):
    __tablename__ = "venue_users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    role = Column(String(50), nullable=False, default="staff")

    __table_args__ = (
        UniqueConstraint("venue_id", "user_id", name="uq_venue_user"),
    )


class TableZone(Base, TimestampMixin):
    __tablename__ = "table_zones"

    id = Column(String(36), primary_key=True, default=new_uuid)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class VenueTable(Base, TimestampMixin):
    __tablename__ = "venue_tables"

    id = Column(String(36), primary_key=True, default=new_uuid)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=False, index=True)
    zone_id = Column(String(36), ForeignKey("table_zones.id"), nullable=True)
    name = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False)
    minimum_spend = Column(Numeric(12, 2), nullable=False, default=0)
    deposit_amount = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_table_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<VenueTable(id={self.id}, name={self.name}, capacity={self.capacity})>"


class VenuePaymentSettings(Base, TimestampMixin):
    __tablename__ = "venue_payment_settings"

    id = Column(String(36), primary_key=True, default=new_uuid)
    venue_id = Column(String(36), ForeignKey("venues.id"), nullable=False, unique=True)

    doku_enabled = Column(Boolean, nullable=False, default=False)
    doku_client_id = Column(String(255), nullable=True)
    doku_secret_key = Column(String(255), nullable=True)
    doku_environment = Column(String(20), nullable=False, default="sandbox")  # sandbox, production

    payment_expiry_hours = Column(Integer, nullable=False, default=24)
    auto_confirm_on_payment = Column(Boolean, nullable=False, default=True)

    manual_payment_enabled = Column(Boolean, nullable=False, default=False)
    manual_payment_instructions = Column(String(2000), nullable=True)
    bank_name = Column(String(255), nullable=True)
    bank_account_name = Column(String(255), nullable=True)
    bank_account_number = Column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint("doku_environment IN ('sandbox', 'production')", name="check_doku_environment"),
    )
