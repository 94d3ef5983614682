"""
Tests for idempotent check-in: access rules, pass tokens, duplicates and
the unique-constraint race.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import ActivityLog, Notification, OutboxEvent, UserRole, XpLedger
from app.models.attendee import Checkin, Registration
from app.models.event import Event, EventDoorStaff
from app.models.party import TablePartyGuest
from app.models.venue import VenueUser
from app.services import checkin_service
from app.services.token_codec import mint_pass_token

STAFF_ID = "user-door"
VENUE_OWNER_ID = "user-venue-owner"
ORGANIZER_OWNER_ID = "user-organizer-owner"
PROMOTER_USER_ID = "user-promoter"


async def grant_role(db_session: AsyncSession, user_id: str, role: str) -> None:
    db_session.add(UserRole(user_id=user_id, role=role))
    await db_session.commit()


async def count(db_session: AsyncSession, column, *where) -> int:
    result = await db_session.execute(select(func.count(column)).where(*where))
    return result.scalar_one()


@pytest.fixture
def checkin_url(seed) -> str:
    return f"/api/v1/events/{seed.event_id}/checkin"


@pytest.fixture
def staff_headers(auth_headers_for) -> dict:
    return auth_headers_for(STAFF_ID, "door@example.com")


@pytest.mark.asyncio
async def test_requires_identity(client: AsyncClient, checkin_url, make_registration):
    registration_id, _ = await make_registration()
    response = await client.post(checkin_url, json={"registration_id": registration_id})
    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized"


@pytest.mark.asyncio
async def test_requires_event_access(client: AsyncClient, checkin_url, make_registration, staff_headers):
    registration_id, _ = await make_registration()
    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Forbidden: No access to this event"


@pytest.mark.asyncio
async def test_first_checkin_by_registration_id(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, staff_headers
):
    await grant_role(db_session, STAFF_ID, "door_staff")
    registration_id, attendee_id = await make_registration(user_id="user-ayu")

    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["duplicate"] is False
    assert data["attendee_name"] == "Ayu Guest"
    assert data["attendee_id"] == attendee_id
    assert data["registration_id"] == registration_id
    assert data["attendee"]["email"] == "ayu@example.com"
    assert data["checkin"]["method"] == "manual"
    assert data["checkin"]["checked_in_by"] == STAFF_ID
    assert data["message"] == "Ayu Guest checked in successfully"

    db_session.expire_all()
    registration = await db_session.get(Registration, registration_id)
    assert registration.checked_in_at is not None

    assert await count(db_session, ActivityLog.id, ActivityLog.entity_id == registration_id) == 1
    # No award_xp function on SQLite: the ledger fallback is used
    result = await db_session.execute(select(XpLedger).where(XpLedger.user_id == "user-ayu"))
    ledger = result.scalars().all()
    assert [(row.amount, row.source_type, row.role_context) for row in ledger] == [
        (100, "ATTENDED_EVENT", "attendee")
    ]
    result = await db_session.execute(
        select(OutboxEvent).where(OutboxEvent.event_name == "attendee_checked_in")
    )
    outbox = result.scalars().one()
    assert outbox.payload["registration_id"] == registration_id
    assert outbox.payload["checkin_id"] == data["checkin"]["id"]
    assert outbox.payload["checked_in_by"] == STAFF_ID


@pytest.mark.asyncio
async def test_no_xp_without_linked_account(
    client: AsyncClient, db_session: AsyncSession, checkin_url, make_registration, staff_headers
):
    await grant_role(db_session, STAFF_ID, "superadmin")
    registration_id, _ = await make_registration(user_id=None)

    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
    assert response.status_code == 200
    assert await count(db_session, XpLedger.id) == 0


@pytest.mark.asyncio
async def test_second_scan_is_duplicate(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, staff_headers
):
    await grant_role(db_session, STAFF_ID, "door_staff")
    registration_id, attendee_id = await make_registration(user_id="user-ayu")
    qr_token = mint_pass_token(registration_id, seed.event_id, attendee_id)

    first = await client.post(checkin_url, json={"qr_token": qr_token}, headers=staff_headers)
    second = await client.post(checkin_url, json={"qr_token": qr_token}, headers=staff_headers)

    assert first.status_code == second.status_code == 200
    assert first.json()["duplicate"] is False
    assert first.json()["checkin"]["method"] == "qr_code"
    assert second.json()["duplicate"] is True
    assert second.json()["attendee_name"] == first.json()["attendee_name"]
    assert second.json()["checkin"]["id"] == first.json()["checkin"]["id"]
    assert second.json()["attendee"] is None
    assert second.json()["message"] == "Ayu Guest was already checked in"

    assert await count(db_session, Checkin.id, Checkin.registration_id == registration_id) == 1
    # Side effects fired once
    assert await count(db_session, XpLedger.id) == 1
    assert await count(db_session, OutboxEvent.id, OutboxEvent.event_name == "attendee_checked_in") == 1


@pytest.mark.asyncio
async def test_lost_race_answers_as_duplicate(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, staff_headers, monkeypatch
):
    """A concurrent scan committed first: the unique violation becomes a duplicate answer."""
    await grant_role(db_session, STAFF_ID, "door_staff")
    registration_id, _ = await make_registration(user_id="user-ayu")
    winner = Checkin(registration_id=registration_id, event_id=seed.event_id, checked_in_by="user-other-door")
    db_session.add(winner)
    await db_session.commit()
    winner_id = winner.id

    real_find = checkin_service._find_checkin
    calls = []

    async def find_misses_first(db, reg_id):
        calls.append(reg_id)
        if len(calls) == 1:
            return None
        return await real_find(db, reg_id)

    monkeypatch.setattr(checkin_service, "_find_checkin", find_misses_first)

    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["duplicate"] is True
    assert data["checkin"]["id"] == winner_id
    assert data["checkin"]["checked_in_by"] == "user-other-door"
    assert data["attendee_name"] == "Ayu Guest"

    assert await count(db_session, Checkin.id, Checkin.registration_id == registration_id) == 1
    assert await count(db_session, XpLedger.id) == 0
    assert await count(db_session, OutboxEvent.id) == 0


@pytest.mark.asyncio
async def test_token_errors(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, staff_headers
):
    await grant_role(db_session, STAFF_ID, "door_staff")
    registration_id, attendee_id = await make_registration()

    response = await client.post(checkin_url, json={"qr_token": "garbage"}, headers=staff_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid QR code: Invalid token signature"

    other_event_token = mint_pass_token(registration_id, "another-event", attendee_id)
    response = await client.post(checkin_url, json={"qr_token": other_event_token}, headers=staff_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "QR code is for a different event"


@pytest.mark.asyncio
async def test_exactly_one_credential(client: AsyncClient, db_session: AsyncSession, checkin_url, staff_headers):
    response = await client.post(checkin_url, json={}, headers=staff_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Either qr_token or registration_id is required"

    response = await client.post(
        checkin_url, json={"qr_token": "a", "registration_id": "b"}, headers=staff_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_registration_lookup_errors(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, staff_headers
):
    await grant_role(db_session, STAFF_ID, "door_staff")

    response = await client.post(checkin_url, json={"registration_id": "missing"}, headers=staff_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Registration not found"

    other_event = Event(
        venue_id=seed.venue_id,
        name="Saturday Lights",
        start_time=(await db_session.get(Event, seed.event_id)).start_time,
        status="published",
    )
    db_session.add(other_event)
    await db_session.commit()
    registration_id, _ = await make_registration(event_id=other_event.id)

    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Registration is for a different event"


@pytest.mark.asyncio
async def test_venue_admin_access(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, auth_headers_for
):
    registration_id, _ = await make_registration()
    await grant_role(db_session, "user-venue-staff", "venue_admin")

    headers = auth_headers_for("user-venue-staff")
    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=headers)
    assert response.status_code == 403

    db_session.add(VenueUser(venue_id=seed.venue_id, user_id="user-venue-staff"))
    await db_session.commit()
    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=headers)
    assert response.status_code == 200

    # The venue creator counts as linked without a membership row
    await grant_role(db_session, VENUE_OWNER_ID, "venue_admin")
    response = await client.post(
        checkin_url, json={"registration_id": registration_id}, headers=auth_headers_for(VENUE_OWNER_ID)
    )
    assert response.status_code == 200
    assert response.json()["duplicate"] is True


@pytest.mark.asyncio
async def test_organizer_access_by_creator(
    client: AsyncClient, db_session: AsyncSession, checkin_url, make_registration, auth_headers_for
):
    registration_id, _ = await make_registration()
    await grant_role(db_session, ORGANIZER_OWNER_ID, "event_organizer")
    response = await client.post(
        checkin_url, json={"registration_id": registration_id}, headers=auth_headers_for(ORGANIZER_OWNER_ID)
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_door_staff_assignment(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, staff_headers
):
    registration_id, _ = await make_registration()
    db_session.add(EventDoorStaff(event_id=seed.event_id, user_id=STAFF_ID, status="revoked"))
    await db_session.commit()

    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
    assert response.status_code == 403

    result = await db_session.execute(select(EventDoorStaff).where(EventDoorStaff.user_id == STAFF_ID))
    assignment = result.scalar_one()
    assignment.status = "active"
    await db_session.commit()

    response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_promoter_bonus_notification(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_registration, staff_headers, monkeypatch
):
    monkeypatch.setattr(checkin_service.settings, "PROMOTER_BONUS_THRESHOLD", 2)
    await grant_role(db_session, STAFF_ID, "door_staff")
    first_id, _ = await make_registration(email="one@example.com", referral_promoter_id=seed.promoter_id)
    second_id, _ = await make_registration(email="two@example.com", referral_promoter_id=seed.promoter_id)
    third_id, _ = await make_registration(email="three@example.com", referral_promoter_id=seed.promoter_id)

    for registration_id in (first_id, second_id):
        response = await client.post(checkin_url, json={"registration_id": registration_id}, headers=staff_headers)
        assert response.status_code == 200

    result = await db_session.execute(select(Notification).where(Notification.user_id == PROMOTER_USER_ID))
    notifications = result.scalars().all()
    assert len(notifications) == 1
    assert notifications[0].type == "bonus_progress"
    assert notifications[0].details["checkins"] == 2

    # Only the crossing scan notifies
    response = await client.post(checkin_url, json={"registration_id": third_id}, headers=staff_headers)
    assert response.status_code == 200
    assert await count(db_session, Notification.id, Notification.user_id == PROMOTER_USER_ID) == 1


@pytest.mark.asyncio
async def test_checkin_marks_party_guest(
    client: AsyncClient, db_session: AsyncSession, seed, checkin_url, make_booking, staff_headers,
    auth_headers_for,
):
    await grant_role(db_session, STAFF_ID, "door_staff")
    booking_id = await make_booking(status="confirmed")
    response = await client.get(f"/api/v1/booking/{booking_id}")
    host_id = response.json()["party"]["host"]["id"]

    response = await client.get(
        f"/api/v1/table-party/pass/{host_id}",
        headers=auth_headers_for("user-host", "host@example.com"),
    )
    assert response.status_code == 200
    qr_token = response.json()["qr_token"]

    response = await client.post(checkin_url, json={"qr_token": qr_token}, headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["attendee_name"] == "Hana Host"

    db_session.expire_all()
    host = await db_session.get(TablePartyGuest, host_id)
    assert host.checked_in is True
    assert host.checked_in_at is not None

    response = await client.get(f"/api/v1/booking/{booking_id}")
    assert response.json()["party"]["host"]["checked_in"] is True
