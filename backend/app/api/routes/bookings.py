"""
Table booking endpoints: event bookings, direct booking links and the
booking status page.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import CurrentUser, get_optional_user
from app.db.session import get_db
from app.schemas.booking import BookingCreate, BookingCreateResponse, BookingDetailResponse
from app.schemas.event import BookingLinkResponse
from app.services.booking_service import (
    get_booking_detail,
    get_booking_link_view,
    submit_booking,
    submit_link_booking,
)

router = APIRouter(tags=["Bookings"])


@router.post("/events/{event_id}/tables/book", response_model=BookingCreateResponse)
async def book_table(
    event_id: str,
    booking_data: BookingCreate,
    ref: Optional[str] = Query(None, description="Promoter referral code"),
    code: Optional[str] = Query(None, description="Direct booking link code"),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Request a table for an event.

    A deposit, when the table requires one, is paid through the returned
    payment URL. The booking is recorded even if the payment session could
    not be opened.
    """
    return await submit_booking(db, event_id, booking_data, current_user=user, ref_code=ref, link_code=code)


@router.get("/book/{code}", response_model=BookingLinkResponse)
async def view_booking_link(code: str, db: AsyncSession = Depends(get_db)):
    """Resolve a direct booking link to its event and bookable tables."""
    return await get_booking_link_view(db, code)


@router.post("/book/{code}", response_model=BookingCreateResponse)
async def book_via_link(
    code: str,
    booking_data: BookingCreate,
    ref: Optional[str] = Query(None, description="Promoter referral code"),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await submit_link_booking(db, code, booking_data, current_user=user, ref_code=ref)


@router.get("/booking/{booking_id}", response_model=BookingDetailResponse)
async def booking_status(booking_id: str, db: AsyncSession = Depends(get_db)):
    """Booking status page, including the party once the booking is confirmed or paid."""
    return await get_booking_detail(db, booking_id)
