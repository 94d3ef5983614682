"""
Door check-in endpoint.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import CurrentUser, get_current_user
from app.db.session import get_db
from app.schemas.checkin import CheckinRequest, CheckinResponse
from app.services.checkin_service import check_in

router = APIRouter(tags=["Check-in"])


@router.post("/events/{event_id}/checkin", response_model=CheckinResponse)
async def checkin_attendee(
    event_id: str,
    request: CheckinRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Check an attendee in by QR pass or registration id.

    Scanning the same pass twice is not an error: the second scan returns
    the first check-in with duplicate=true.
    """
    return await check_in(db, event_id, request, user)
