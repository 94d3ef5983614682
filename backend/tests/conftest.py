"""
Pytest fixtures for the test database, client, identities and seed data.

Tests run against in-memory SQLite (aiosqlite) with the schema created and
dropped per test. Redis is disabled so the booking link cache falls open,
and outgoing template emails are captured instead of sent.

Fixtures hand out ids rather than ORM instances: a rolled-back side effect
expires every instance in the shared session.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("EMAIL_API_TOKEN", "")

from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.security import create_access_token
from app.infrastructure import email_client
from app.models.attendee import Attendee, Registration
from app.models.booking import TableBooking
from app.models.event import Event, TableBookingLink
from app.models.organizer import Organizer, Promoter
from app.models.venue import TableZone, Venue, VenueTable

TEST_DATABASE_URL = "sqlite+aiosqlite://"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

VENUE_OWNER_ID = "user-venue-owner"
ORGANIZER_OWNER_ID = "user-organizer-owner"
PROMOTER_USER_ID = "user-promoter"
HOST_EMAIL = "host@example.com"


@dataclass(frozen=True)
class Seed:
    venue_id: str
    zone_id: str
    organizer_id: str
    event_id: str
    table_id: str
    deposit_table_id: str
    promoter_id: str


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def sent_emails(monkeypatch) -> list[dict]:
    """Capture template emails instead of calling the provider."""
    sent = []

    async def fake_send(template, to_email, attendee_id, variables, context=None):
        sent.append({
            "template": template,
            "to": to_email,
            "attendee_id": attendee_id,
            "variables": variables,
            "context": context,
        })
        return True

    monkeypatch.setattr(email_client, "send_template_email", fake_send)
    return sent


@pytest.fixture
def auth_headers_for():
    """Build bearer headers for an identity-provider user."""

    def build(user_id: str, email: str = None) -> dict:
        claims = {"sub": user_id}
        if email:
            claims["email"] = email
        return {"Authorization": f"Bearer {create_access_token(data=claims)}"}

    return build


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession, sent_emails) -> Seed:
    """
    A published, open-booking event at a venue with two tables:
    T1 (capacity 6, no deposit) and T2 (capacity 4, deposit 50).
    """
    organizer = Organizer(name="Night Owls", created_by=ORGANIZER_OWNER_ID)
    venue = Venue(name="Skyline Club", slug="skyline-club", currency="IDR", created_by=VENUE_OWNER_ID)
    db_session.add_all([organizer, venue])
    await db_session.flush()

    zone = TableZone(venue_id=venue.id, name="VIP")
    db_session.add(zone)
    await db_session.flush()

    table = VenueTable(
        venue_id=venue.id,
        zone_id=zone.id,
        name="T1",
        capacity=6,
        minimum_spend=Decimal("1000000"),
        deposit_amount=Decimal("0"),
    )
    deposit_table = VenueTable(
        venue_id=venue.id,
        zone_id=zone.id,
        name="T2",
        capacity=4,
        minimum_spend=Decimal("500000"),
        deposit_amount=Decimal("50"),
    )
    event = Event(
        venue_id=venue.id,
        organizer_id=organizer.id,
        name="Friday Lights",
        slug="friday-lights",
        start_time=datetime.now(timezone.utc) + timedelta(days=7),
        end_time=datetime.now(timezone.utc) + timedelta(days=7, hours=6),
        timezone="Asia/Jakarta",
        status="published",
        table_booking_mode="open",
        currency="IDR",
    )
    promoter = Promoter(name="Rina", created_by=PROMOTER_USER_ID)
    db_session.add_all([table, deposit_table, event, promoter])
    await db_session.commit()

    return Seed(
        venue_id=venue.id,
        zone_id=zone.id,
        organizer_id=organizer.id,
        event_id=event.id,
        table_id=table.id,
        deposit_table_id=deposit_table.id,
        promoter_id=promoter.id,
    )


@pytest_asyncio.fixture
async def make_booking(db_session: AsyncSession, seed: Seed):
    """Insert a booking directly; returns its id."""

    async def create(
        status: str = "confirmed",
        payment_status: str = "not_required",
        guest_email: str = HOST_EMAIL,
        table_id: str = None,
        party_size: int = 6,
    ) -> str:
        booking = TableBooking(
            event_id=seed.event_id,
            table_id=table_id or seed.table_id,
            guest_name="Hana Host",
            guest_email=guest_email,
            guest_whatsapp="+628111111111",
            party_size=party_size,
            status=status,
            payment_status=payment_status,
            minimum_spend=Decimal("1000000"),
            deposit_required=Decimal("0"),
            promoter_id=seed.promoter_id,
        )
        db_session.add(booking)
        await db_session.commit()
        return booking.id

    return create


@pytest_asyncio.fixture
async def make_link(db_session: AsyncSession, seed: Seed):
    """Insert a direct booking link; returns its code."""

    async def create(
        code: str = "skyline-vip",
        table_id: str = None,
        is_active: bool = True,
        expires_at: datetime = None,
    ) -> str:
        db_session.add(TableBookingLink(
            event_id=seed.event_id,
            table_id=table_id,
            code=code,
            is_active=is_active,
            expires_at=expires_at,
        ))
        await db_session.commit()
        return code

    return create


@pytest_asyncio.fixture
async def make_registration(db_session: AsyncSession, seed: Seed):
    """Insert an attendee and their registration; returns (registration_id, attendee_id)."""

    async def create(
        name: str = "Ayu Guest",
        email: str = "ayu@example.com",
        user_id: str = None,
        event_id: str = None,
        referral_promoter_id: str = None,
    ) -> tuple[str, str]:
        attendee = Attendee(email=email, name=name, user_id=user_id)
        db_session.add(attendee)
        await db_session.flush()
        registration = Registration(
            attendee_id=attendee.id,
            event_id=event_id or seed.event_id,
            source="direct",
            referral_promoter_id=referral_promoter_id,
        )
        db_session.add(registration)
        await db_session.commit()
        return registration.id, attendee.id

    return create
