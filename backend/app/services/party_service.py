"""
Party (guest list) reconciliation for confirmed table bookings.

RECONCILIATION STRATEGY
=======================

The host row is never assumed to exist. Whenever a confirmed or paid booking
is read (detail page, payment webhook) the party is materialized:

  1. Load non-removed guests, host first, then by creation time
  2. No host row: upgrade the guest whose email matches the booking email,
     or create a new host row (status=joined)
  3. Link the host: find/create the Attendee by email, find/create the
     Registration for (attendee, event), mint a pass token once
  4. Re-read the host row so the view reflects persisted state

Every step is find-or-create, so running it any number of times yields the
same host, the same pass token and a joined count that never decreases.

Host authorization for guest-list reads and invites accepts the caller's
account email, the host guest's email, or an `email` query parameter
matching the booking email. The query parameter is not a proof of identity;
it exists for link-sharing and is only suitable for low-stakes invites.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyOnListError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from app.core.logging import get_logger
from app.core.security import CurrentUser
from app.db.base import as_aware, utcnow
from app.infrastructure import email_client
from app.models.attendee import Attendee, Registration
from app.models.booking import TableBooking
from app.models.event import Event
from app.models.party import TablePartyGuest
from app.schemas.party import (
    GuestAddResponse,
    GuestCreate,
    GuestListResponse,
    GuestListSummary,
    GuestPassResponse,
    GuestRemoveResponse,
    InviteGuest,
    InvitePreviewResponse,
    PartyGuestResponse,
    PartyHost,
    PartyJoin,
    PartyJoinResponse,
    PartyEventInfo,
    PartyMember,
    PartyTableInfo,
    PartyView,
    PassGuest,
)
from app.services.activity_service import emit_outbox_event
from app.services.booking_context import load_booking_context
from app.services.effects import PostCommitEffects
from app.services.formatting import format_event_date, format_event_time, invite_url, pass_url
from app.services.token_codec import mint_pass_token

logger = get_logger(__name__)


def is_party_active(booking: TableBooking) -> bool:
    return booking.status == "confirmed" or booking.payment_status == "paid"


async def get_booking(db: AsyncSession, booking_id: str) -> TableBooking:
    result = await db.execute(select(TableBooking).where(TableBooking.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def _active_guests(db: AsyncSession, booking_id: str) -> list[TablePartyGuest]:
    result = await db.execute(
        select(TablePartyGuest)
        .where(
            TablePartyGuest.booking_id == booking_id,
            TablePartyGuest.status != "removed",
        )
        .order_by(TablePartyGuest.is_host.desc(), TablePartyGuest.created_at.asc())
    )
    return list(result.scalars().all())


async def _host_guest(db: AsyncSession, booking_id: str) -> Optional[TablePartyGuest]:
    result = await db.execute(
        select(TablePartyGuest)
        .where(
            TablePartyGuest.booking_id == booking_id,
            TablePartyGuest.is_host.is_(True),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_attendee_by_email(db: AsyncSession, email: str) -> Optional[Attendee]:
    result = await db.execute(
        select(Attendee).where(Attendee.email == email.lower()).limit(1)
    )
    return result.scalar_one_or_none()


async def find_or_create_attendee(
    db: AsyncSession,
    email: str,
    name: Optional[str],
    phone: Optional[str] = None,
) -> Attendee:
    attendee = await find_attendee_by_email(db, email)
    if attendee:
        return attendee

    attendee = Attendee(email=email.lower(), name=name, phone=phone)
    db.add(attendee)
    await db.flush()
    logger.info("attendee_created", attendee_id=attendee.id)
    return attendee


async def find_or_create_registration(
    db: AsyncSession,
    attendee_id: str,
    event_id: str,
    source: str,
    referral_promoter_id: Optional[str] = None,
) -> tuple[Registration, bool]:
    """Return the (attendee, event) registration and whether it was created."""
    result = await db.execute(
        select(Registration).where(
            Registration.attendee_id == attendee_id,
            Registration.event_id == event_id,
        )
    )
    registration = result.scalar_one_or_none()
    if registration:
        if registration.status == "cancelled":
            registration.status = "registered"
        return registration, False

    registration = Registration(
        attendee_id=attendee_id,
        event_id=event_id,
        source=source,
        referral_promoter_id=referral_promoter_id,
    )
    db.add(registration)
    await db.flush()
    logger.info("registration_created", registration_id=registration.id, event_id=event_id, source=source)
    return registration, True


async def _link_host(db: AsyncSession, booking: TableBooking, host: TablePartyGuest) -> None:
    attendee = await find_or_create_attendee(
        db,
        email=host.guest_email,
        name=booking.guest_name or host.guest_name,
        phone=booking.guest_whatsapp,
    )
    registration, _ = await find_or_create_registration(
        db,
        attendee_id=attendee.id,
        event_id=booking.event_id,
        source="table_booking",
        referral_promoter_id=booking.promoter_id,
    )

    if not host.qr_token:
        host.qr_token = mint_pass_token(registration.id, booking.event_id, attendee.id)
        logger.info("host_pass_minted", booking_id=booking.id, guest_id=host.id)
    if host.attendee_id != attendee.id:
        host.attendee_id = attendee.id
    if booking.attendee_id is None:
        booking.attendee_id = attendee.id


async def materialize_party(db: AsyncSession, booking: TableBooking) -> Optional[PartyView]:
    """
    Ensure the host row exists and is linked, then return the party view.
    Returns None while the booking is neither confirmed nor paid.
    """
    if not is_party_active(booking):
        return None

    guests = await _active_guests(db, booking.id)
    host = next((guest for guest in guests if guest.is_host), None)
    host_created = False

    if host is None:
        booking_email = booking.guest_email.lower()
        match = next((guest for guest in guests if guest.guest_email.lower() == booking_email), None)
        if match:
            match.is_host = True
            if match.status != "joined":
                match.status = "joined"
                match.joined_at = match.joined_at or utcnow()
            host = match
            logger.info("party_host_upgraded", booking_id=booking.id, guest_id=match.id)
        else:
            host = TablePartyGuest(
                booking_id=booking.id,
                guest_name=booking.guest_name,
                guest_email=booking_email,
                guest_phone=booking.guest_whatsapp,
                is_host=True,
                status="joined",
                joined_at=utcnow(),
            )
            db.add(host)
            host_created = True
        await db.flush()
        if host_created:
            logger.info("party_host_created", booking_id=booking.id, guest_id=host.id)

    await _link_host(db, booking, host)
    await db.flush()
    await db.refresh(host)

    total_joined = sum(1 for guest in guests if guest.status == "joined")
    if host_created:
        total_joined += 1

    return PartyView(
        host=PartyHost(
            id=host.id,
            name=host.guest_name,
            pass_url=pass_url(host.id),
            checked_in=host.checked_in,
        ),
        guests=[
            PartyMember(
                id=guest.id,
                name=guest.guest_name,
                email=guest.guest_email,
                status=guest.status,
                checked_in=guest.checked_in,
            )
            for guest in guests
            if not guest.is_host
        ],
        invite_url=invite_url(host.invite_token),
        total_joined=total_joined,
        party_size=booking.party_size,
    )


async def is_host_caller(
    db: AsyncSession,
    booking: TableBooking,
    user: Optional[CurrentUser],
    email_param: Optional[str] = None,
) -> bool:
    booking_email = (booking.guest_email or "").lower()
    user_email = user.email.lower() if user and user.email else None

    if user_email and booking_email == user_email:
        return True

    if user_email:
        host = await _host_guest(db, booking.id)
        if host and host.guest_email.lower() == user_email:
            return True

    if email_param and booking_email == email_param.strip().lower():
        return True

    return False


async def list_guests(
    db: AsyncSession,
    booking_id: str,
    user: Optional[CurrentUser],
    email_param: Optional[str] = None,
) -> GuestListResponse:
    booking = await get_booking(db, booking_id)
    if not await is_host_caller(db, booking, user, email_param):
        raise ForbiddenError("Unauthorized")

    guests = await _active_guests(db, booking.id)
    return GuestListResponse(
        guests=[PartyGuestResponse.model_validate(guest) for guest in guests],
        summary=GuestListSummary(
            total=len(guests),
            invited=sum(1 for guest in guests if guest.status == "invited"),
            joined=sum(1 for guest in guests if guest.status == "joined"),
            checked_in=sum(1 for guest in guests if guest.checked_in),
        ),
    )


async def add_guest(
    db: AsyncSession,
    booking_id: str,
    guest_data: GuestCreate,
    user: Optional[CurrentUser],
    email_param: Optional[str] = None,
) -> GuestAddResponse:
    """
    Invite a guest. A previously removed guest with the same email is
    reinstated instead of duplicated. No email is sent; the host shares
    the returned join link.
    """
    booking = await get_booking(db, booking_id)

    if not is_party_active(booking):
        raise InvalidStateError("Booking must be confirmed before adding guests")

    if not await is_host_caller(db, booking, user, email_param):
        raise ForbiddenError("Unauthorized")

    email = guest_data.guest_email.lower()
    result = await db.execute(
        select(TablePartyGuest).where(
            TablePartyGuest.booking_id == booking.id,
            TablePartyGuest.guest_email == email,
        )
        .order_by(TablePartyGuest.status == "removed", TablePartyGuest.created_at.asc())
    )
    existing = result.scalars().first()

    if existing and existing.status != "removed":
        raise AlreadyOnListError("This email is already on the guest list")

    if existing:
        existing.guest_name = guest_data.guest_name
        existing.guest_phone = guest_data.guest_phone
        existing.status = "invited"
        existing.invite_sent_at = utcnow()
        guest = existing
        message = "Guest re-added. Share the join link with them."
        logger.info("party_guest_reinstated", booking_id=booking.id, guest_id=guest.id)
    else:
        attendee = await find_attendee_by_email(db, email)
        guest = TablePartyGuest(
            booking_id=booking.id,
            attendee_id=attendee.id if attendee else None,
            guest_name=guest_data.guest_name,
            guest_email=email,
            guest_phone=guest_data.guest_phone,
            is_host=False,
            status="invited",
            invite_sent_at=utcnow(),
        )
        db.add(guest)
        message = "Guest added. Share the join link with them."

    await db.flush()
    await db.refresh(guest)
    response = GuestAddResponse(
        guest=PartyGuestResponse.model_validate(guest),
        join_url=invite_url(guest.invite_token),
        message=message,
    )
    await db.commit()

    logger.info("party_guest_added", booking_id=booking.id, guest_id=response.guest.id)
    return response


async def remove_guest(
    db: AsyncSession,
    booking_id: str,
    guest_id: str,
    user: Optional[CurrentUser],
) -> GuestRemoveResponse:
    if user is None or not user.email:
        raise UnauthorizedError("Authentication required")

    booking = await get_booking(db, booking_id)
    if not await is_host_caller(db, booking, user):
        raise ForbiddenError("Only the table host can remove guests")

    result = await db.execute(
        select(TablePartyGuest).where(
            TablePartyGuest.id == guest_id,
            TablePartyGuest.booking_id == booking.id,
        )
    )
    guest = result.scalar_one_or_none()
    if not guest:
        raise NotFoundError("Guest not found")

    if guest.is_host:
        raise InvalidStateError("Cannot remove the table host")

    guest.status = "removed"
    if guest.attendee_id:
        await db.execute(
            update(Registration)
            .where(
                Registration.attendee_id == guest.attendee_id,
                Registration.event_id == booking.event_id,
            )
            .values(status="cancelled")
        )

    event = await db.get(Event, booking.event_id)
    context = await load_booking_context(db, event, booking.table_id)
    guest_name = guest.guest_name or "Guest"
    guest_email = guest.guest_email
    attendee_id = guest.attendee_id
    host_name = booking.guest_name or "The host"

    await db.commit()
    logger.info("party_guest_removed", booking_id=booking_id, guest_id=guest_id)

    effects = PostCommitEffects(db, "party_guest_removed")
    effects.add(
        "removal_email",
        lambda: email_client.send_template_email(
            "table_party_guest_removed",
            guest_email,
            attendee_id,
            {
                "guest_name": guest_name,
                "event_name": context.event_name or "the event",
                "host_name": host_name,
                "venue_name": context.venue_name,
            },
            {"event_id": context.event_id, "booking_id": booking_id},
        ),
    )
    await effects.run()

    return GuestRemoveResponse(message=f"{guest_name} has been removed from the table")


async def join_party(
    db: AsyncSession,
    invite_token: str,
    join_data: PartyJoin,
    user: Optional[CurrentUser],
) -> PartyJoinResponse:
    """Accept an invitation as the signed-in invitee and issue their pass."""
    if user is None or not user.email:
        raise UnauthorizedError("Authentication required. Please sign in to join the party.")

    result = await db.execute(
        select(TablePartyGuest).where(TablePartyGuest.invite_token == invite_token)
    )
    guest = result.scalar_one_or_none()
    if not guest:
        raise NotFoundError("Invalid or expired invitation")

    if user.email.lower() != guest.guest_email.lower():
        raise ForbiddenError(
            "This invitation was sent to a different email address. "
            "Please use the email that received the invitation."
        )

    if guest.status == "removed":
        raise InvalidStateError("This invitation has been revoked")

    booking = await get_booking(db, guest.booking_id)
    if booking.status == "cancelled":
        raise InvalidStateError("This booking has been cancelled")

    if guest.status == "joined" and guest.attendee_id:
        registration_result = await db.execute(
            select(Registration).where(
                Registration.attendee_id == guest.attendee_id,
                Registration.event_id == booking.event_id,
            )
        )
        registration = registration_result.scalar_one_or_none()
        qr_token = guest.qr_token
        if registration and not qr_token:
            qr_token = mint_pass_token(registration.id, booking.event_id, guest.attendee_id)
            guest.qr_token = qr_token
            await db.commit()
            logger.info("party_pass_minted", booking_id=booking.id, guest_id=guest.id)
        return PartyJoinResponse(
            already_joined=True,
            guest_id=guest.id,
            registration_id=registration.id if registration else None,
            qr_token=qr_token,
            message="You've already joined this party",
        )

    guests = await _active_guests(db, booking.id)
    joined_count = sum(1 for member in guests if member.status == "joined")
    if joined_count >= (booking.party_size or 1):
        raise InvalidStateError("This party is full. Contact the host to request additional spots.")

    result = await db.execute(select(Attendee).where(Attendee.user_id == user.id).limit(1))
    attendee = result.scalar_one_or_none()
    if attendee is None:
        attendee = await find_attendee_by_email(db, user.email)
    if attendee is None:
        attendee = Attendee(email=user.email.lower())
        db.add(attendee)

    attendee.user_id = user.id
    attendee.name = join_data.name or attendee.name or guest.guest_name
    attendee.phone = join_data.phone or attendee.phone or guest.guest_phone
    await db.flush()

    registration, registration_created = await find_or_create_registration(
        db,
        attendee_id=attendee.id,
        event_id=booking.event_id,
        source="table_party_invite",
        referral_promoter_id=booking.promoter_id,
    )
    qr_token = mint_pass_token(registration.id, booking.event_id, attendee.id)

    guest.status = "joined"
    guest.joined_at = utcnow()
    guest.qr_token = qr_token
    guest.guest_name = attendee.name
    guest.guest_phone = attendee.phone
    guest.attendee_id = attendee.id

    event = await db.get(Event, booking.event_id)
    context = await load_booking_context(db, event, booking.table_id)
    guest_id = guest.id
    guest_email = guest.guest_email
    guest_name = attendee.name or "Guest"
    attendee_id = attendee.id
    registration_id = registration.id
    host_email = booking.guest_email
    host_name = booking.guest_name
    booking_id = booking.id

    await db.commit()
    logger.info("party_guest_joined", booking_id=booking_id, guest_id=guest_id, registration_id=registration_id)

    effects = PostCommitEffects(db, "party_join")
    if registration_created:
        effects.add(
            "outbox",
            lambda: emit_outbox_event(db, "registration.created", {
                "registration_id": registration_id,
                "attendee_id": attendee_id,
                "event_id": context.event_id,
            }),
        )
    effects.add(
        "joined_email",
        lambda: email_client.send_template_email(
            "table_party_joined",
            guest_email,
            attendee_id,
            {
                "guest_name": guest_name,
                "event_name": context.event_name,
                "event_date": format_event_date(context.start_time, context.timezone),
                "table_name": context.table_name,
                "venue_name": context.venue_name,
                "qr_url": pass_url(guest_id),
            },
            {"event_id": context.event_id, "booking_id": booking_id},
        ),
    )
    effects.add(
        "host_email",
        lambda: email_client.send_template_email(
            "table_party_guest_joined_host",
            host_email,
            None,
            {
                "host_name": host_name,
                "guest_name": guest_name,
                "event_name": context.event_name,
                "table_name": context.table_name,
            },
            {"event_id": context.event_id, "booking_id": booking_id},
        ),
    )
    await effects.run()

    return PartyJoinResponse(
        guest_id=guest_id,
        registration_id=registration_id,
        qr_token=qr_token,
        message="Successfully joined the party! Check your email for your QR pass.",
    )


async def _party_details(db: AsyncSession, booking: TableBooking) -> tuple[PartyTableInfo, PartyEventInfo]:
    event = await db.get(Event, booking.event_id)
    context = await load_booking_context(db, event, booking.table_id)
    table = PartyTableInfo(
        booking_id=booking.id,
        host_name=booking.guest_name,
        party_size=booking.party_size,
        table_name=context.table_name,
        zone_name=context.zone_name or "General",
    )
    start_time = as_aware(context.start_time) if context.start_time else None
    event_info = PartyEventInfo(
        id=context.event_id,
        name=context.event_name,
        slug=context.event_slug,
        date=format_event_date(start_time, context.timezone),
        time=format_event_time(start_time, context.timezone),
        start_time=start_time,
        is_past=bool(start_time and start_time < utcnow()),
        venue_name=context.venue_name,
    )
    return table, event_info


async def preview_invite(db: AsyncSession, invite_token: str) -> InvitePreviewResponse:
    """
    Public view of an invitation for the join page, shown before the
    invitee signs in.
    """
    result = await db.execute(
        select(TablePartyGuest).where(TablePartyGuest.invite_token == invite_token)
    )
    guest = result.scalar_one_or_none()
    if not guest:
        raise NotFoundError("Invalid or expired invitation")

    if guest.status == "removed":
        raise InvalidStateError("This invitation has been revoked")
    if guest.status == "declined":
        raise InvalidStateError("This invitation was declined")

    booking = await get_booking(db, guest.booking_id)
    guests = await _active_guests(db, booking.id)
    joined_count = sum(1 for member in guests if member.status == "joined")
    party_size = booking.party_size or 1
    table, event_info = await _party_details(db, booking)

    return InvitePreviewResponse(
        guest=InviteGuest(
            id=guest.id,
            name=guest.guest_name,
            email=guest.guest_email,
            status=guest.status,
            is_host=guest.is_host,
            has_joined=guest.status == "joined",
            checked_in=guest.checked_in,
        ),
        table=table,
        event=event_info,
        joined_count=joined_count,
        spots_remaining=max(party_size - joined_count, 0),
        is_party_full=joined_count >= party_size,
    )


async def get_guest_pass(
    db: AsyncSession,
    guest_id: str,
    user: Optional[CurrentUser],
) -> GuestPassResponse:
    """
    Return the QR pass of a joined guest to that guest.

    The caller owns the pass when their account is linked to the guest's
    attendee or their email is the guest's email. The token stored on the
    guest row is returned as is; one is minted and stored if missing.
    """
    if user is None or not user.email:
        raise UnauthorizedError("Authentication required")

    guest = await db.get(TablePartyGuest, guest_id)
    if not guest:
        raise NotFoundError("Pass not found")

    attendee = await db.get(Attendee, guest.attendee_id) if guest.attendee_id else None
    owns_pass = guest.guest_email.lower() == user.email.lower() or (
        attendee is not None and attendee.user_id == user.id
    )
    if not owns_pass:
        raise ForbiddenError("This pass belongs to a different account")

    if guest.status == "removed":
        raise InvalidStateError("This pass has been revoked")
    if guest.status != "joined" or not guest.attendee_id:
        raise InvalidStateError("Please accept your invitation first to get your pass")

    booking = await get_booking(db, guest.booking_id)
    if booking.status == "cancelled":
        raise InvalidStateError("This booking has been cancelled")

    result = await db.execute(
        select(Registration).where(
            Registration.attendee_id == guest.attendee_id,
            Registration.event_id == booking.event_id,
        )
    )
    registration = result.scalar_one_or_none()
    if not registration:
        raise NotFoundError("Registration not found")

    table, event_info = await _party_details(db, booking)
    response = GuestPassResponse(
        qr_token=guest.qr_token or mint_pass_token(registration.id, booking.event_id, guest.attendee_id),
        registration_id=registration.id,
        booking_status=booking.status,
        guest=PassGuest(
            id=guest.id,
            name=guest.guest_name,
            email=guest.guest_email,
            is_host=guest.is_host,
            checked_in=guest.checked_in,
            checked_in_at=guest.checked_in_at,
        ),
        table=table,
        event=event_info,
    )

    if guest.qr_token != response.qr_token:
        guest.qr_token = response.qr_token
        await db.commit()
        logger.info("party_pass_minted", booking_id=booking.id, guest_id=guest.id)
    return response
