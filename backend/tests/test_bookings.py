"""
Tests for table booking: admission, duplicate guard, direct links and the
booking status page.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UpstreamError
from app.infrastructure import email_client
from app.models.attendee import Attendee
from app.models.booking import TableBooking
from app.models.event import Event, EventTableAvailability
from app.models.party import TablePartyGuest

PROMOTER_USER_ID = "user-promoter"


def booking_payload(table_id: str, **overrides) -> dict:
    payload = {
        "table_id": table_id,
        "guest_name": "Dewi Guest",
        "guest_email": "Dewi@Example.com",
        "guest_whatsapp": "+628123456789",
        "special_requests": "Near the DJ booth",
    }
    payload.update(overrides)
    return payload


async def count_bookings(db_session: AsyncSession) -> int:
    result = await db_session.execute(select(func.count(TableBooking.id)))
    return result.scalar_one()


async def set_event(db_session: AsyncSession, event_id: str, **values) -> None:
    event = await db_session.get(Event, event_id)
    for key, value in values.items():
        setattr(event, key, value)
    await db_session.commit()


@pytest.mark.asyncio
async def test_book_table_without_deposit(client: AsyncClient, seed, sent_emails, db_session):
    """Open booking: party size comes from the table, no payment needed."""
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["payment"] is None
    booking = data["booking"]
    assert booking["status"] == "pending"
    assert booking["payment_status"] == "not_required"
    assert booking["party_size"] == 6
    assert booking["table_name"] == "T1"
    assert booking["zone_name"] == "VIP"
    assert booking["minimum_spend"] == 1000000
    assert booking["booking_url"] == f"/booking/{booking['id']}"
    assert data["event"] == {"id": seed.event_id, "name": "Friday Lights", "slug": "friday-lights"}

    assert len(sent_emails) == 1
    email = sent_emails[0]
    assert email["template"] == "table_booking_request"
    assert email["to"] == "dewi@example.com"
    assert email["variables"]["zone_name"] == "VIP"
    assert email["variables"]["party_size"] == "6"
    assert email["variables"]["minimum_spend"] == "1000000.00"
    assert email["variables"]["currency_symbol"] == "Rp"
    assert email["variables"]["deposit_required"] == ""

    stored = await db_session.get(TableBooking, booking["id"])
    assert stored.guest_email == "dewi@example.com"
    assert stored.special_requests == "Near the DJ booth"


@pytest.mark.asyncio
async def test_book_table_with_deposit_and_no_gateway(client: AsyncClient, seed, sent_emails):
    """Deposit required but the venue has no DOKU settings: booking stays pending payment."""
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.deposit_table_id),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["booking"]["payment_status"] == "pending"
    assert data["booking"]["deposit_required"] == 50
    assert data["booking"]["party_size"] == 4
    assert data["payment"] is None
    assert sent_emails[0]["variables"]["deposit_required"] == "true"
    assert sent_emails[0]["variables"]["deposit_amount"] == "50.00"


@pytest.mark.asyncio
async def test_event_override_applies_to_booking(client: AsyncClient, seed, db_session):
    db_session.add(EventTableAvailability(
        event_id=seed.event_id,
        table_id=seed.table_id,
        is_available=True,
        override_capacity=8,
        override_minimum_spend=Decimal("1500000"),
    ))
    await db_session.commit()

    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 200
    booking = response.json()["booking"]
    assert booking["party_size"] == 8
    assert booking["minimum_spend"] == 1500000


@pytest.mark.asyncio
async def test_unavailable_table_rejected(client: AsyncClient, seed, db_session):
    db_session.add(EventTableAvailability(event_id=seed.event_id, table_id=seed.table_id, is_available=False))
    await db_session.commit()

    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "This table is not available for this event"


@pytest.mark.asyncio
async def test_unknown_event(client: AsyncClient, seed):
    response = await client.post(
        "/api/v1/events/no-such-event/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Event not found"


@pytest.mark.asyncio
async def test_unpublished_event(client: AsyncClient, seed, db_session):
    await set_event(db_session, seed.event_id, status="draft")
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Event is not available for bookings"


@pytest.mark.asyncio
async def test_booking_disabled(client: AsyncClient, seed, db_session):
    await set_event(db_session, seed.event_id, table_booking_mode="disabled")
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Table booking is not enabled for this event"


@pytest.mark.asyncio
async def test_promoter_only_requires_referral(client: AsyncClient, seed, db_session, sent_emails):
    """No ref and no valid link: rejected and nothing is written."""
    await set_event(db_session, seed.event_id, table_booking_mode="promoter_only")
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Table booking requires a promoter referral link"
    assert await count_bookings(db_session) == 0
    assert sent_emails == []


@pytest.mark.asyncio
async def test_promoter_only_with_referral_by_user_id(client: AsyncClient, seed, db_session):
    """A referral code may be the promoter's user id instead of the promoter id."""
    await set_event(db_session, seed.event_id, table_booking_mode="promoter_only")
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book?ref={PROMOTER_USER_ID}",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 200

    stored = await db_session.get(TableBooking, response.json()["booking"]["id"])
    assert stored.promoter_id == seed.promoter_id
    assert stored.referral_code == PROMOTER_USER_ID


@pytest.mark.asyncio
async def test_unmatched_referral_is_kept_without_promoter(client: AsyncClient, seed, db_session):
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book?ref=mystery",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 200

    stored = await db_session.get(TableBooking, response.json()["booking"]["id"])
    assert stored.promoter_id is None
    assert stored.referral_code == "mystery"


@pytest.mark.asyncio
async def test_direct_link_bypasses_booking_mode(client: AsyncClient, seed, db_session, make_link):
    await set_event(db_session, seed.event_id, table_booking_mode="disabled")
    code = await make_link()
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book?code={code}",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_expired_link_falls_back_to_booking_mode(client: AsyncClient, seed, db_session, make_link):
    await set_event(db_session, seed.event_id, table_booking_mode="promoter_only")
    code = await make_link(expires_at=datetime.now(timezone.utc) - timedelta(hours=1))
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book?code={code}",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Table booking requires a promoter referral link"


@pytest.mark.asyncio
async def test_pinned_link_rejects_other_table(client: AsyncClient, seed, make_link):
    code = await make_link(table_id=seed.deposit_table_id)
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book?code={code}",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "This booking link is for a specific table"


@pytest.mark.asyncio
async def test_duplicate_pending_booking_rejected(client: AsyncClient, seed, db_session):
    first = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert first.status_code == 200

    second = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id, guest_email="dewi@example.com"),
    )
    assert second.status_code == 400
    assert second.json()["detail"] == (
        "You already have a pending request for this table. Please wait for venue confirmation."
    )
    assert await count_bookings(db_session) == 1


@pytest.mark.asyncio
async def test_duplicate_confirmed_booking_rejected(client: AsyncClient, seed, make_booking):
    await make_booking(status="confirmed", guest_email="dewi@example.com")
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "You already have a confirmed booking for this table."


@pytest.mark.asyncio
async def test_cancelled_booking_does_not_block(client: AsyncClient, seed, make_booking):
    await make_booking(status="cancelled", guest_email="dewi@example.com")
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_missing_fields(client: AsyncClient, seed):
    payload = booking_payload(seed.table_id)
    del payload["guest_whatsapp"]
    response = await client.post(f"/api/v1/events/{seed.event_id}/tables/book", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required fields: guest_whatsapp"


@pytest.mark.asyncio
async def test_invalid_email(client: AsyncClient, seed):
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id, guest_email="not-an-email"),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid email format"


@pytest.mark.asyncio
async def test_email_failure_does_not_fail_booking(client: AsyncClient, seed, db_session, monkeypatch):
    async def failing_send(*args, **kwargs):
        raise UpstreamError("email", "provider down")

    monkeypatch.setattr(email_client, "send_template_email", failing_send)
    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
    )
    assert response.status_code == 200
    assert await count_bookings(db_session) == 1


@pytest.mark.asyncio
async def test_signed_in_guest_is_linked_to_attendee(client: AsyncClient, seed, db_session, auth_headers_for):
    attendee = Attendee(email="someone@example.com", name="Dewi", user_id="user-dewi")
    db_session.add(attendee)
    await db_session.commit()
    attendee_id = attendee.id

    response = await client.post(
        f"/api/v1/events/{seed.event_id}/tables/book",
        json=booking_payload(seed.table_id),
        headers=auth_headers_for("user-dewi", "someone@example.com"),
    )
    assert response.status_code == 200

    stored = await db_session.get(TableBooking, response.json()["booking"]["id"])
    assert stored.attendee_id == attendee_id


@pytest.mark.asyncio
async def test_view_booking_link(client: AsyncClient, seed, make_link):
    code = await make_link()
    response = await client.get(f"/api/v1/book/{code}")
    assert response.status_code == 200
    data = response.json()
    assert data["cached"] is False
    assert data["link"]["code"] == code
    assert data["event"]["id"] == seed.event_id
    assert data["event"]["venue_name"] == "Skyline Club"
    assert [table["name"] for table in data["tables"]] == ["T1", "T2"]
    assert data["tables"][1]["deposit"] == 50


@pytest.mark.asyncio
async def test_view_pinned_booking_link(client: AsyncClient, seed, make_link):
    code = await make_link(table_id=seed.deposit_table_id)
    response = await client.get(f"/api/v1/book/{code}")
    assert response.status_code == 200
    assert [table["id"] for table in response.json()["tables"]] == [seed.deposit_table_id]


@pytest.mark.asyncio
async def test_booking_link_errors(client: AsyncClient, seed, db_session, make_link):
    response = await client.get("/api/v1/book/unknown")
    assert response.status_code == 404
    assert response.json()["detail"] == "Booking link not found"

    inactive = await make_link(code="inactive", is_active=False)
    response = await client.get(f"/api/v1/book/{inactive}")
    assert response.status_code == 410
    assert response.json()["detail"] == "This booking link is no longer active"

    expired = await make_link(code="expired", expires_at=datetime.now(timezone.utc) - timedelta(minutes=5))
    response = await client.get(f"/api/v1/book/{expired}")
    assert response.status_code == 410
    assert response.json()["detail"] == "This booking link has expired"

    active = await make_link(code="active")
    await set_event(db_session, seed.event_id, end_time=datetime.now(timezone.utc) - timedelta(hours=1))
    response = await client.get(f"/api/v1/book/{active}")
    assert response.status_code == 410
    assert response.json()["detail"] == "This event has already ended"


@pytest.mark.asyncio
async def test_book_via_link(client: AsyncClient, seed, db_session, make_link):
    await set_event(db_session, seed.event_id, table_booking_mode="disabled")
    code = await make_link()
    response = await client.post(f"/api/v1/book/{code}", json=booking_payload(seed.table_id))
    assert response.status_code == 200
    assert response.json()["booking"]["table_name"] == "T1"

    gone = await make_link(code="gone", is_active=False)
    response = await client.post(f"/api/v1/book/{gone}", json=booking_payload(seed.deposit_table_id))
    assert response.status_code == 410


@pytest.mark.asyncio
async def test_pending_booking_detail_has_no_party(client: AsyncClient, seed, make_booking, db_session):
    booking_id = await make_booking(status="pending")
    response = await client.get(f"/api/v1/booking/{booking_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["booking"]["status"] == "pending"
    assert data["table"]["name"] == "T1"
    assert data["table"]["zone_name"] == "VIP"
    assert data["party"] is None
    assert data["venue_payment"]["doku_enabled"] is False

    result = await db_session.execute(select(func.count(TablePartyGuest.id)))
    assert result.scalar_one() == 0


@pytest.mark.asyncio
async def test_confirmed_booking_detail_materializes_party(client: AsyncClient, seed, make_booking):
    booking_id = await make_booking(status="confirmed")

    first = await client.get(f"/api/v1/booking/{booking_id}")
    assert first.status_code == 200
    party = first.json()["party"]
    assert party["host"]["name"] == "Hana Host"
    assert party["host"]["pass_url"].endswith(f"/table-pass/{party['host']['id']}")
    assert party["total_joined"] == 1
    assert party["party_size"] == 6
    assert "/join-table/" in party["invite_url"]

    second = await client.get(f"/api/v1/booking/{booking_id}")
    assert second.json()["party"]["host"]["id"] == party["host"]["id"]
    assert second.json()["party"]["total_joined"] == 1


@pytest.mark.asyncio
async def test_unknown_booking_detail(client: AsyncClient, seed):
    response = await client.get("/api/v1/booking/missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Booking not found"
