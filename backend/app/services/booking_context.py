"""
Snapshot of the event, venue and table a booking refers to.

Built once per workflow so responses and post-commit emails can use plain
values after the session has committed or rolled back.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.models.event import Event
from app.models.venue import TableZone, Venue, VenueTable

settings = get_settings()


@dataclass(frozen=True)
class BookingContext:
    event_id: str
    event_name: str
    event_slug: Optional[str]
    start_time: Optional[datetime]
    timezone: Optional[str]
    currency: str
    venue_id: Optional[str]
    venue_name: str
    venue_slug: Optional[str]
    table_name: str
    zone_name: Optional[str]


async def load_booking_context(
    db: AsyncSession,
    event: Event,
    table_id: Optional[str] = None,
) -> BookingContext:
    venue = await db.get(Venue, event.venue_id) if event.venue_id else None
    table = await db.get(VenueTable, table_id) if table_id else None
    zone = await db.get(TableZone, table.zone_id) if table and table.zone_id else None

    return BookingContext(
        event_id=event.id,
        event_name=event.name,
        event_slug=event.slug,
        start_time=event.start_time,
        timezone=event.timezone,
        currency=event.currency or (venue.currency if venue else None) or settings.DEFAULT_CURRENCY,
        venue_id=venue.id if venue else None,
        venue_name=venue.name if venue else "",
        venue_slug=venue.slug if venue else None,
        table_name=table.name if table else "Table",
        zone_name=zone.name if zone else None,
    )
