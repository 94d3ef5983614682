"""
Effective table availability for an event.

Venue tables carry default capacity, minimum spend and deposit. An event may
override any of them, or mark the table unavailable, through an optional
EventTableAvailability row. An override value wins only when it is set;
no override row at all means "available with table defaults".
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidStateError, NotFoundError
from app.models.event import Event, EventTableAvailability
from app.models.venue import TableZone, VenueTable


@dataclass(frozen=True)
class EffectiveAvailability:
    effective_capacity: int
    effective_minimum_spend: Decimal
    effective_deposit: Decimal
    is_available: bool

    @property
    def party_size(self) -> int:
        # Guests never choose party size; the table dictates it.
        return self.effective_capacity


@dataclass(frozen=True)
class BookableTable:
    table: VenueTable
    zone_name: Optional[str]
    availability: EffectiveAvailability


def _coalesce(override, default):
    return default if override is None else override


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


def resolve_availability(
    table: VenueTable,
    override: Optional[EventTableAvailability],
) -> EffectiveAvailability:
    if override is None:
        return EffectiveAvailability(
            effective_capacity=table.capacity,
            effective_minimum_spend=_money(table.minimum_spend),
            effective_deposit=_money(table.deposit_amount),
            is_available=True,
        )

    return EffectiveAvailability(
        effective_capacity=_coalesce(override.override_capacity, table.capacity),
        effective_minimum_spend=_money(_coalesce(override.override_minimum_spend, table.minimum_spend)),
        effective_deposit=_money(_coalesce(override.override_deposit, table.deposit_amount)),
        is_available=override.is_available is not False,
    )


async def _zone_names(db: AsyncSession, zone_ids: set) -> dict[str, str]:
    zone_ids = {zone_id for zone_id in zone_ids if zone_id}
    if not zone_ids:
        return {}
    result = await db.execute(select(TableZone).where(TableZone.id.in_(zone_ids)))
    return {zone.id: zone.name for zone in result.scalars().all()}


async def load_bookable_table(db: AsyncSession, event: Event, table_id: str) -> BookableTable:
    """Load a table of the event's venue and resolve its effective values."""
    result = await db.execute(select(VenueTable).where(VenueTable.id == table_id))
    table = result.scalar_one_or_none()

    if not table or table.venue_id != event.venue_id:
        raise NotFoundError("Table not found")

    if not table.is_active:
        raise InvalidStateError("This table is not available")

    result = await db.execute(
        select(EventTableAvailability).where(
            EventTableAvailability.event_id == event.id,
            EventTableAvailability.table_id == table.id,
        )
    )
    availability = resolve_availability(table, result.scalar_one_or_none())

    if not availability.is_available:
        raise InvalidStateError("This table is not available for this event")

    zones = await _zone_names(db, {table.zone_id})
    return BookableTable(table=table, zone_name=zones.get(table.zone_id), availability=availability)


async def list_event_tables(
    db: AsyncSession,
    event: Event,
    table_id: Optional[str] = None,
) -> list[BookableTable]:
    """
    Active tables of the event's venue that are available for the event,
    ordered by name. Restricted to one table when table_id is given.
    """
    if not event.venue_id:
        return []

    query = select(VenueTable).where(
        VenueTable.venue_id == event.venue_id,
        VenueTable.is_active.is_(True),
    )
    if table_id:
        query = query.where(VenueTable.id == table_id)
    result = await db.execute(query.order_by(VenueTable.name))
    tables = list(result.scalars().all())
    if not tables:
        return []

    result = await db.execute(
        select(EventTableAvailability).where(
            EventTableAvailability.event_id == event.id,
            EventTableAvailability.table_id.in_([table.id for table in tables]),
        )
    )
    overrides = {row.table_id: row for row in result.scalars().all()}
    zones = await _zone_names(db, {table.zone_id for table in tables})

    bookable = []
    for table in tables:
        availability = resolve_availability(table, overrides.get(table.id))
        if availability.is_available:
            bookable.append(
                BookableTable(table=table, zone_name=zones.get(table.zone_id), availability=availability)
            )
    return bookable
