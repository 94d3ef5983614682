"""
Table booking workflow.

ADMISSION
=========

A booking is admitted through one of two paths:

  1. Direct link: an active, unexpired TableBookingLink for the event admits
     the request regardless of the event's booking mode. A link pinned to a
     table only admits that table.
  2. Booking mode: "disabled" rejects, "promoter_only" requires a referral
     code, "open" admits everyone.

An inactive or expired link is not an error on submit; the request simply
falls back to the booking-mode checks.

DUPLICATE GUARD
===============

At most one pending or confirmed booking per (event, table, guest email).
This is an optimistic read-then-write check, not a constraint: a venue
reconciles the rare race by hand, and capacity across different guests is
advisory.

SIDE EFFECTS
============

The booking row is committed first. The request email and the deposit
payment session then run as post-commit effects; either may fail without
affecting the booking.
"""

import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DuplicateBookingError,
    GoneError,
    InvalidStateError,
    NotFoundError,
)
from app.core.logging import get_logger
from app.core.metrics import booking_latency, record_booking_attempt
from app.core.security import CurrentUser
from app.db.base import as_aware, utcnow
from app.infrastructure import email_client
from app.models.attendee import Attendee
from app.models.booking import PaymentTransaction, TableBooking
from app.models.event import Event, TableBookingLink
from app.models.organizer import Promoter
from app.models.venue import TableZone, VenueTable
from app.schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingDetail,
    BookingDetailResponse,
    BookingSummary,
    PaymentTransactionInfo,
    TableInfo,
    VenuePaymentOptions,
)
from app.schemas.event import (
    BookingLinkInfo,
    BookingLinkResponse,
    EventDetail,
    EventSummary,
    TableOption,
)
from app.services.availability_service import list_event_tables, load_bookable_table
from app.services.booking_context import load_booking_context
from app.services.cache_service import get_cached_booking_link, set_cached_booking_link
from app.services.effects import PostCommitEffects
from app.services.formatting import currency_symbol, format_event_date
from app.services.party_service import get_booking, materialize_party
from app.services.payment_service import create_checkout_session, doku_credentials, get_payment_settings

logger = get_logger(__name__)

DEPOSIT_INSTRUCTIONS = (
    "Please contact the venue to arrange your deposit payment. "
    "Your booking will be confirmed once the deposit is received."
)


def _is_expired(link: TableBookingLink) -> bool:
    return link.expires_at is not None and as_aware(link.expires_at) < utcnow()


def _relative_booking_url(booking_id: str) -> str:
    return f"/booking/{booking_id}"


async def _find_link(db: AsyncSession, code: str, event_id: Optional[str] = None) -> Optional[TableBookingLink]:
    query = select(TableBookingLink).where(TableBookingLink.code == code)
    if event_id:
        query = query.where(TableBookingLink.event_id == event_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def _check_admission(
    db: AsyncSession,
    event: Event,
    table_id: str,
    ref_code: Optional[str],
    link_code: Optional[str],
) -> bool:
    """Return True when admitted through a direct link."""
    if link_code:
        link = await _find_link(db, link_code, event.id)
        if link and link.is_active and not _is_expired(link):
            if link.table_id and link.table_id != table_id:
                raise InvalidStateError("This booking link is for a specific table")
            return True

    mode = event.table_booking_mode or "disabled"
    if mode == "disabled":
        raise InvalidStateError("Table booking is not enabled for this event")
    if mode == "promoter_only" and not ref_code:
        raise InvalidStateError("Table booking requires a promoter referral link")
    return False


async def resolve_promoter(db: AsyncSession, ref_code: Optional[str]) -> Optional[str]:
    """
    Match a referral code to a promoter id, first as the promoter's own id,
    then as the user id that owns a promoter profile. Unmatched codes are
    kept verbatim on the booking by the caller.
    """
    if not ref_code:
        return None

    result = await db.execute(select(Promoter.id).where(Promoter.id == ref_code))
    promoter_id = result.scalar_one_or_none()
    if promoter_id:
        return promoter_id

    result = await db.execute(select(Promoter.id).where(Promoter.created_by == ref_code).limit(1))
    return result.scalar_one_or_none()


async def resolve_attendee_id(
    db: AsyncSession,
    current_user: Optional[CurrentUser],
    guest_email: str,
) -> Optional[str]:
    if current_user:
        result = await db.execute(
            select(Attendee.id).where(Attendee.user_id == current_user.id).limit(1)
        )
        attendee_id = result.scalar_one_or_none()
        if attendee_id:
            return attendee_id

    result = await db.execute(select(Attendee.id).where(Attendee.email == guest_email).limit(1))
    return result.scalar_one_or_none()


async def _check_duplicate(db: AsyncSession, event_id: str, table_id: str, guest_email: str) -> None:
    result = await db.execute(
        select(TableBooking.status).where(
            TableBooking.event_id == event_id,
            TableBooking.table_id == table_id,
            TableBooking.guest_email == guest_email,
            TableBooking.status.in_(("pending", "confirmed")),
        )
    )
    statuses = set(result.scalars().all())
    if not statuses:
        return

    if "pending" in statuses:
        raise DuplicateBookingError(
            "You already have a pending request for this table. Please wait for venue confirmation."
        )
    raise DuplicateBookingError("You already have a confirmed booking for this table.")


async def submit_booking(
    db: AsyncSession,
    event_id: str,
    booking_data: BookingCreate,
    current_user: Optional[CurrentUser] = None,
    ref_code: Optional[str] = None,
    link_code: Optional[str] = None,
) -> BookingCreateResponse:
    """
    Validate and record a table booking request, then send the request email
    and open a deposit payment session when one is required.
    """
    started = time.perf_counter()
    try:
        response = await _submit_booking(db, event_id, booking_data, current_user, ref_code, link_code)
    except Exception:
        record_booking_attempt("rejected")
        raise
    record_booking_attempt("created")
    booking_latency.observe(time.perf_counter() - started)
    return response


async def _submit_booking(
    db: AsyncSession,
    event_id: str,
    booking_data: BookingCreate,
    current_user: Optional[CurrentUser],
    ref_code: Optional[str],
    link_code: Optional[str],
) -> BookingCreateResponse:
    ref_code = (ref_code or "").strip() or None
    link_code = (link_code or "").strip() or None

    event = await db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")
    if event.status != "published":
        raise InvalidStateError("Event is not available for bookings")

    via_link = await _check_admission(db, event, booking_data.table_id, ref_code, link_code)

    bookable = await load_bookable_table(db, event, booking_data.table_id)
    availability = bookable.availability

    promoter_id = await resolve_promoter(db, ref_code)
    guest_email = booking_data.guest_email.lower()
    attendee_id = await resolve_attendee_id(db, current_user, guest_email)

    await _check_duplicate(db, event.id, bookable.table.id, guest_email)

    deposit = availability.effective_deposit
    booking = TableBooking(
        event_id=event.id,
        table_id=bookable.table.id,
        attendee_id=attendee_id,
        guest_name=booking_data.guest_name,
        guest_email=guest_email,
        guest_whatsapp=booking_data.guest_whatsapp,
        party_size=availability.party_size,
        special_requests=booking_data.special_requests or None,
        promoter_id=promoter_id,
        referral_code=ref_code,
        status="pending",
        payment_status="pending" if deposit > 0 else "not_required",
        minimum_spend=availability.effective_minimum_spend,
        deposit_required=deposit,
    )
    db.add(booking)
    await db.flush()

    context = await load_booking_context(db, event, bookable.table.id)
    booking_id = booking.id
    summary = BookingSummary(
        id=booking_id,
        status=booking.status,
        payment_status=booking.payment_status,
        table_name=bookable.table.name,
        zone_name=bookable.zone_name,
        minimum_spend=float(availability.effective_minimum_spend),
        deposit_required=float(deposit),
        party_size=availability.party_size,
        booking_url=_relative_booking_url(booking_id),
    )

    await db.commit()
    logger.info(
        "booking_created",
        booking_id=booking_id,
        event_id=event_id,
        table_id=bookable.table.id,
        party_size=availability.party_size,
        deposit=float(deposit),
        promoter_id=promoter_id,
        via_link=via_link,
    )

    effects = PostCommitEffects(db, "table_booking")
    effects.add(
        "request_email",
        lambda: email_client.send_template_email(
            "table_booking_request",
            guest_email,
            attendee_id,
            {
                "guest_name": booking_data.guest_name,
                "event_name": context.event_name,
                "event_date": format_event_date(context.start_time, context.timezone),
                "table_name": context.table_name,
                "zone_name": context.zone_name or "General",
                "party_size": str(availability.party_size),
                "minimum_spend": f"{availability.effective_minimum_spend:.2f}",
                "currency_symbol": currency_symbol(context.currency),
                "deposit_required": "true" if deposit > 0 else "",
                "deposit_amount": f"{deposit:.2f}",
                "deposit_instructions": DEPOSIT_INSTRUCTIONS if deposit > 0 else "",
            },
            {"event_id": context.event_id, "booking_id": booking_id},
        ),
    )
    if deposit > 0:
        effects.add(
            "payment_session",
            lambda: create_checkout_session(
                db,
                venue_id=context.venue_id,
                booking_id=booking_id,
                amount=deposit,
                currency=context.currency,
                customer_name=booking_data.guest_name,
                customer_email=guest_email,
                customer_phone=booking_data.guest_whatsapp,
                description=f"Table Deposit - {context.table_name} at {context.event_name}",
            ),
        )
    results = await effects.run()
    payment = results.get("payment_session")

    if deposit > 0:
        message = "Your table booking request has been received. Please pay your deposit to confirm."
    else:
        message = "Your table booking request has been received. We will contact you shortly to confirm."

    return BookingCreateResponse(
        booking=summary,
        event=EventSummary(id=context.event_id, name=context.event_name, slug=context.event_slug),
        payment=payment,
        message=message,
    )


async def resolve_booking_link(db: AsyncSession, code: str) -> tuple[TableBookingLink, Event]:
    """Load an active booking link and its event, or raise 404/410."""
    link = await _find_link(db, code)
    if not link:
        raise NotFoundError("Booking link not found")
    if not link.is_active:
        raise GoneError("This booking link is no longer active")
    if _is_expired(link):
        raise GoneError("This booking link has expired")

    event = await db.get(Event, link.event_id)
    if not event:
        raise NotFoundError("Event not found")
    if event.end_time is not None and as_aware(event.end_time) < utcnow():
        raise GoneError("This event has already ended")
    return link, event


async def get_booking_link_view(db: AsyncSession, code: str) -> BookingLinkResponse:
    cached = await get_cached_booking_link(code)
    if cached:
        cached["cached"] = True
        return BookingLinkResponse.model_validate(cached)

    link, event = await resolve_booking_link(db, code)
    context = await load_booking_context(db, event)
    tables = await list_event_tables(db, event, table_id=link.table_id)

    view = BookingLinkResponse(
        link=BookingLinkInfo(code=link.code, table_id=link.table_id, expires_at=link.expires_at),
        event=EventDetail(
            id=event.id,
            name=event.name,
            slug=event.slug,
            start_time=event.start_time,
            end_time=event.end_time,
            timezone=event.timezone,
            currency=context.currency,
            venue_name=context.venue_name or None,
        ),
        tables=[
            TableOption(
                id=item.table.id,
                name=item.table.name,
                zone_name=item.zone_name,
                capacity=item.availability.effective_capacity,
                minimum_spend=float(item.availability.effective_minimum_spend),
                deposit=float(item.availability.effective_deposit),
                party_size=item.availability.party_size,
            )
            for item in tables
        ],
    )
    await set_cached_booking_link(code, view.model_dump(mode="json"))
    return view


async def submit_link_booking(
    db: AsyncSession,
    code: str,
    booking_data: BookingCreate,
    current_user: Optional[CurrentUser] = None,
    ref_code: Optional[str] = None,
) -> BookingCreateResponse:
    link, event = await resolve_booking_link(db, code)
    return await submit_booking(
        db,
        event.id,
        booking_data,
        current_user=current_user,
        ref_code=ref_code,
        link_code=link.code,
    )


async def get_booking_detail(db: AsyncSession, booking_id: str) -> BookingDetailResponse:
    """
    Booking status page. Confirmed or paid bookings materialize their party
    on every read.
    """
    booking = await get_booking(db, booking_id)
    event = await db.get(Event, booking.event_id)
    table = await db.get(VenueTable, booking.table_id)
    zone = await db.get(TableZone, table.zone_id) if table and table.zone_id else None

    payment = None
    if booking.payment_transaction_id:
        transaction = await db.get(PaymentTransaction, booking.payment_transaction_id)
        if transaction:
            payment = PaymentTransactionInfo(
                invoice_number=transaction.doku_invoice_id,
                payment_url=transaction.doku_payment_url,
                status=transaction.status,
                amount=float(transaction.amount),
                currency=transaction.currency,
                expires_at=transaction.expires_at,
                paid_at=transaction.paid_at,
            )

    payment_settings = await get_payment_settings(db, event.venue_id if event else None)
    venue_payment = VenuePaymentOptions(
        doku_enabled=doku_credentials(payment_settings) is not None,
        manual_payment_enabled=bool(payment_settings and payment_settings.manual_payment_enabled),
        manual_payment_instructions=payment_settings.manual_payment_instructions if payment_settings else None,
        bank_name=payment_settings.bank_name if payment_settings else None,
        bank_account_name=payment_settings.bank_account_name if payment_settings else None,
        bank_account_number=payment_settings.bank_account_number if payment_settings else None,
    )

    party = await materialize_party(db, booking)
    if party is not None:
        await db.commit()

    return BookingDetailResponse(
        booking=BookingDetail.model_validate(booking),
        event=EventSummary.model_validate(event),
        table=TableInfo(
            id=table.id,
            name=table.name,
            zone_name=zone.name if zone else None,
            capacity=table.capacity,
        ),
        payment=payment,
        venue_payment=venue_payment,
        party=party,
    )
