"""
Party (guest list) endpoints for confirmed table bookings.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import CurrentUser, get_optional_user
from app.db.session import get_db
from app.schemas.party import (
    GuestAddResponse,
    GuestCreate,
    GuestListResponse,
    GuestPassResponse,
    GuestRemove,
    GuestRemoveResponse,
    InvitePreviewResponse,
    PartyJoin,
    PartyJoinResponse,
)
from app.services.party_service import (
    add_guest,
    get_guest_pass,
    join_party,
    list_guests,
    preview_invite,
    remove_guest,
)

router = APIRouter(tags=["Party"])


@router.get("/booking/{booking_id}/guests", response_model=GuestListResponse)
async def get_guests(
    booking_id: str,
    email: Optional[str] = Query(None, description="Booking email, for hosts without an account"),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await list_guests(db, booking_id, user, email)


@router.post("/booking/{booking_id}/guests", response_model=GuestAddResponse)
async def invite_guest(
    booking_id: str,
    guest_data: GuestCreate,
    email: Optional[str] = Query(None, description="Booking email, for hosts without an account"),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Add a guest to the party and return the join link to share."""
    return await add_guest(db, booking_id, guest_data, user, email)


@router.delete("/booking/{booking_id}/guests", response_model=GuestRemoveResponse)
async def uninvite_guest(
    booking_id: str,
    removal: GuestRemove,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await remove_guest(db, booking_id, removal.guest_id, user)


@router.get("/table-party/join/{invite_token}", response_model=InvitePreviewResponse)
async def get_invitation(invite_token: str, db: AsyncSession = Depends(get_db)):
    """Invitation details for the join page. No sign-in needed."""
    return await preview_invite(db, invite_token)


@router.post("/table-party/join/{invite_token}", response_model=PartyJoinResponse)
async def join_table_party(
    invite_token: str,
    join_data: Optional[PartyJoin] = None,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept a party invitation and receive a QR pass."""
    return await join_party(db, invite_token, join_data or PartyJoin(), user)


@router.get("/table-party/pass/{guest_id}", response_model=GuestPassResponse)
async def get_party_pass(
    guest_id: str,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_guest_pass(db, guest_id, user)
