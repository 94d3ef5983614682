"""
Idempotent check-in.

IDEMPOTENCY STRATEGY
====================

checkins.registration_id is unique. A scan:

  1. Looks up an existing check-in for the registration. Found → duplicate,
     no side effects.
  2. Otherwise inserts one together with registration.checked_in_at.
  3. If the insert hits the unique constraint, a concurrent scan won the
     race: roll back, fetch the winner's row and answer as a duplicate.

Side effects run only for the request whose insert committed, so XP, outbox
and analytics fire at most once per registration.

ACCESS
======

First match wins:
  - superadmin or door_staff role: every event
  - venue_admin: events at a venue the user belongs to or created
  - event_organizer: events of an organizer the user belongs to or created
  - an active door-staff assignment for this event
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    EventMismatchError,
    ForbiddenError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.core.logging import get_logger
from app.core.metrics import record_checkin
from app.core.security import CurrentUser
from app.db.base import utcnow
from app.models.activity import UserRole
from app.models.attendee import Attendee, Checkin, Registration
from app.models.booking import TableBooking
from app.models.event import Event, EventDoorStaff
from app.models.organizer import Organizer, OrganizerUser, Promoter
from app.models.party import TablePartyGuest
from app.models.venue import Venue, VenueUser
from app.schemas.checkin import AttendeeInfo, CheckinRecord, CheckinRequest, CheckinResponse
from app.services.activity_service import award_xp, emit_outbox_event, log_activity, track_checkin
from app.services.effects import PostCommitEffects
from app.services.notification_service import notify
from app.services.token_codec import verify_pass_token

settings = get_settings()
logger = get_logger(__name__)

FULL_ACCESS_ROLES = ("superadmin", "door_staff")
UNKNOWN_ATTENDEE = "Unknown Attendee"


async def _user_roles(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
    return set(result.scalars().all())


async def _is_venue_admin_for(db: AsyncSession, user_id: str, venue_id: Optional[str]) -> bool:
    if not venue_id:
        return False
    result = await db.execute(
        select(VenueUser.id).where(VenueUser.venue_id == venue_id, VenueUser.user_id == user_id).limit(1)
    )
    if result.scalar_one_or_none():
        return True
    result = await db.execute(select(Venue.id).where(Venue.id == venue_id, Venue.created_by == user_id))
    return result.scalar_one_or_none() is not None


async def _is_organizer_for(db: AsyncSession, user_id: str, organizer_id: Optional[str]) -> bool:
    if not organizer_id:
        return False
    result = await db.execute(
        select(OrganizerUser.id)
        .where(OrganizerUser.organizer_id == organizer_id, OrganizerUser.user_id == user_id)
        .limit(1)
    )
    if result.scalar_one_or_none():
        return True
    result = await db.execute(
        select(Organizer.id).where(Organizer.id == organizer_id, Organizer.created_by == user_id)
    )
    return result.scalar_one_or_none() is not None


async def can_check_in(db: AsyncSession, user_id: str, event: Event) -> bool:
    roles = await _user_roles(db, user_id)

    if roles.intersection(FULL_ACCESS_ROLES):
        return True
    if "venue_admin" in roles and await _is_venue_admin_for(db, user_id, event.venue_id):
        return True
    if "event_organizer" in roles and await _is_organizer_for(db, user_id, event.organizer_id):
        return True

    result = await db.execute(
        select(EventDoorStaff.id)
        .where(
            EventDoorStaff.event_id == event.id,
            EventDoorStaff.user_id == user_id,
            EventDoorStaff.status == "active",
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


def _resolve_registration_id(event_id: str, request: CheckinRequest) -> tuple[str, str]:
    """Return (registration_id, method) from a pass token or a manual id."""
    if request.qr_token:
        try:
            payload = verify_pass_token(request.qr_token)
        except InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid QR code: {e.detail}")
        if payload.event_id != event_id:
            raise EventMismatchError("QR code is for a different event")
        return payload.registration_id, "qr_code"
    return request.registration_id, "manual"


async def _find_checkin(db: AsyncSession, registration_id: str) -> Optional[Checkin]:
    result = await db.execute(select(Checkin).where(Checkin.registration_id == registration_id))
    return result.scalar_one_or_none()


def _duplicate_response(checkin: Checkin, attendee_name: str, attendee_id: str) -> CheckinResponse:
    return CheckinResponse(
        duplicate=True,
        checkin=CheckinRecord.model_validate(checkin),
        attendee_name=attendee_name,
        attendee_id=attendee_id,
        registration_id=checkin.registration_id,
        message=f"{attendee_name} was already checked in",
    )


async def check_in(
    db: AsyncSession,
    event_id: str,
    request: CheckinRequest,
    user: Optional[CurrentUser],
) -> CheckinResponse:
    """Check an attendee in once; repeated scans answer as duplicates."""
    if user is None:
        raise UnauthorizedError("Unauthorized")

    event = await db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")

    if not await can_check_in(db, user.id, event):
        raise ForbiddenError("Forbidden: No access to this event")

    registration_id, method = _resolve_registration_id(event_id, request)

    registration = await db.get(Registration, registration_id)
    if not registration:
        raise NotFoundError("Registration not found")
    if registration.event_id != event_id:
        raise ValidationError("Registration is for a different event")

    attendee = await db.get(Attendee, registration.attendee_id)
    attendee_id = registration.attendee_id
    attendee_name = (attendee.name if attendee else None) or UNKNOWN_ATTENDEE

    existing = await _find_checkin(db, registration_id)
    if existing:
        record_checkin("duplicate")
        logger.info("checkin_duplicate", event_id=event_id, registration_id=registration_id)
        return _duplicate_response(existing, attendee_name, attendee_id)

    attendee_info = AttendeeInfo.model_validate(attendee) if attendee else None
    attendee_user_id = attendee.user_id if attendee else None
    promoter_id = registration.referral_promoter_id
    event_name = event.name
    now = utcnow()

    checkin = Checkin(
        registration_id=registration_id,
        event_id=event_id,
        checked_in_by=user.id,
        checked_in_at=now,
        method=method,
    )
    db.add(checkin)
    registration.checked_in_at = now
    try:
        await db.flush()
        record = CheckinRecord.model_validate(checkin)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        winner = await _find_checkin(db, registration_id)
        if winner is None:
            raise
        record_checkin("race_recovered")
        logger.info("checkin_race_recovered", event_id=event_id, registration_id=registration_id)
        return _duplicate_response(winner, attendee_name, attendee_id)

    record_checkin("created")
    logger.info(
        "checkin_created",
        event_id=event_id,
        registration_id=registration_id,
        checkin_id=record.id,
        method=method,
        checked_in_by=user.id,
    )

    effects = PostCommitEffects(db, "checkin")
    effects.add(
        "activity_log",
        lambda: log_activity(db, user.id, "checkin", "registration", registration_id, {
            "event_id": event_id,
            "attendee_name": attendee_name,
            "method": method,
        }),
    )
    if attendee_user_id:
        effects.add(
            "xp_award",
            lambda: award_xp(
                db,
                user_id=attendee_user_id,
                amount=settings.CHECKIN_XP_AMOUNT,
                source_type="ATTENDED_EVENT",
                role_context="attendee",
                event_id=event_id,
                description="Checked in to event",
            ),
        )
    if promoter_id:
        effects.add("promoter_bonus", lambda: _check_promoter_bonus(db, promoter_id, event_id, event_name))
    effects.add(
        "outbox",
        lambda: emit_outbox_event(db, "attendee_checked_in", {
            "checkin_id": record.id,
            "registration_id": registration_id,
            "event_id": event_id,
            "attendee_name": attendee_name,
            "checked_in_by": user.id,
        }),
    )
    effects.add(
        "analytics",
        lambda: track_checkin(event_id, event_name, attendee_id, registration_id, user.id, method),
    )
    effects.add("party_sync", lambda: _mark_party_guests_checked_in(db, event_id, attendee_id, now))
    await effects.run()

    return CheckinResponse(
        duplicate=False,
        checkin=record,
        attendee_name=attendee_name,
        attendee_id=attendee_id,
        registration_id=registration_id,
        attendee=attendee_info,
        message=f"{attendee_name} checked in successfully",
    )


async def _check_promoter_bonus(db: AsyncSession, promoter_id: str, event_id: str, event_name: str) -> bool:
    """
    Notify the promoter when their attributed check-ins at this event reach
    the bonus threshold. Returns True when a notification was sent.
    """
    result = await db.execute(
        select(func.count(Checkin.id))
        .join(Registration, Registration.id == Checkin.registration_id)
        .where(
            Checkin.event_id == event_id,
            Checkin.undo_at.is_(None),
            Registration.referral_promoter_id == promoter_id,
        )
    )
    count = result.scalar_one()
    threshold = settings.PROMOTER_BONUS_THRESHOLD
    if count != threshold:
        return False

    promoter = await db.get(Promoter, promoter_id)
    if not promoter or not promoter.created_by:
        return False

    await notify(
        db,
        user_id=promoter.created_by,
        type="bonus_progress",
        title="Bonus threshold reached",
        message=f"{count} of your guests have checked in at {event_name}.",
        link="/app/promoter/earnings",
        details={"event_id": event_id, "checkins": count, "threshold": threshold},
    )
    logger.info("promoter_bonus_threshold_reached", promoter_id=promoter_id, event_id=event_id, count=count)
    return True


async def _mark_party_guests_checked_in(
    db: AsyncSession,
    event_id: str,
    attendee_id: str,
    checked_in_at: datetime,
) -> int:
    bookings = select(TableBooking.id).where(TableBooking.event_id == event_id)
    result = await db.execute(
        update(TablePartyGuest)
        .where(
            TablePartyGuest.attendee_id == attendee_id,
            TablePartyGuest.booking_id.in_(bookings),
            TablePartyGuest.checked_in.is_(False),
        )
        .values(checked_in=True, checked_in_at=checked_in_at)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
