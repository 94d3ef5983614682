"""
Tests for effective table availability: override precedence and table lookup.
"""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidStateError, NotFoundError
from app.models.event import Event, EventTableAvailability
from app.models.venue import Venue, VenueTable
from app.services.availability_service import list_event_tables, load_bookable_table, resolve_availability


def _table(**overrides) -> VenueTable:
    values = {
        "name": "T9",
        "capacity": 8,
        "minimum_spend": Decimal("2000000"),
        "deposit_amount": Decimal("250000"),
        "is_active": True,
    }
    values.update(overrides)
    return VenueTable(**values)


def test_no_override_row_uses_table_defaults():
    effective = resolve_availability(_table(), None)
    assert effective.is_available is True
    assert effective.effective_capacity == 8
    assert effective.effective_minimum_spend == Decimal("2000000")
    assert effective.effective_deposit == Decimal("250000")
    assert effective.party_size == 8


def test_set_overrides_win():
    override = EventTableAvailability(
        is_available=True,
        override_capacity=4,
        override_minimum_spend=Decimal("3500000"),
        override_deposit=Decimal("0"),
    )
    effective = resolve_availability(_table(), override)
    assert effective.effective_capacity == 4
    assert effective.effective_minimum_spend == Decimal("3500000")
    # A zero override is still an override
    assert effective.effective_deposit == Decimal("0")
    assert effective.party_size == 4


def test_null_overrides_fall_back_to_defaults():
    override = EventTableAvailability(
        is_available=True,
        override_capacity=None,
        override_minimum_spend=None,
        override_deposit=Decimal("100000"),
    )
    effective = resolve_availability(_table(), override)
    assert effective.effective_capacity == 8
    assert effective.effective_minimum_spend == Decimal("2000000")
    assert effective.effective_deposit == Decimal("100000")


def test_unavailable_override():
    override = EventTableAvailability(is_available=False)
    assert resolve_availability(_table(), override).is_available is False


@pytest.mark.asyncio
async def test_load_bookable_table_applies_override(db_session: AsyncSession, seed):
    db_session.add(EventTableAvailability(
        event_id=seed.event_id,
        table_id=seed.table_id,
        is_available=True,
        override_capacity=10,
    ))
    await db_session.commit()

    event = await db_session.get(Event, seed.event_id)
    bookable = await load_bookable_table(db_session, event, seed.table_id)
    assert bookable.table.name == "T1"
    assert bookable.zone_name == "VIP"
    assert bookable.availability.party_size == 10
    assert bookable.availability.effective_minimum_spend == Decimal("1000000")


@pytest.mark.asyncio
async def test_load_bookable_table_rejects_other_venue(db_session: AsyncSession, seed):
    other_venue = Venue(name="Elsewhere")
    db_session.add(other_venue)
    await db_session.flush()
    foreign = VenueTable(venue_id=other_venue.id, name="X1", capacity=2)
    db_session.add(foreign)
    await db_session.commit()

    event = await db_session.get(Event, seed.event_id)
    with pytest.raises(NotFoundError) as exc_info:
        await load_bookable_table(db_session, event, foreign.id)
    assert exc_info.value.detail == "Table not found"

    with pytest.raises(NotFoundError):
        await load_bookable_table(db_session, event, "no-such-table")


@pytest.mark.asyncio
async def test_load_bookable_table_inactive_and_unavailable(db_session: AsyncSession, seed):
    table = await db_session.get(VenueTable, seed.table_id)
    table.is_active = False
    db_session.add(EventTableAvailability(
        event_id=seed.event_id, table_id=seed.deposit_table_id, is_available=False,
    ))
    await db_session.commit()

    event = await db_session.get(Event, seed.event_id)
    with pytest.raises(InvalidStateError) as exc_info:
        await load_bookable_table(db_session, event, seed.table_id)
    assert exc_info.value.detail == "This table is not available"

    with pytest.raises(InvalidStateError) as exc_info:
        await load_bookable_table(db_session, event, seed.deposit_table_id)
    assert exc_info.value.detail == "This table is not available for this event"


@pytest.mark.asyncio
async def test_list_event_tables_skips_unavailable(db_session: AsyncSession, seed):
    db_session.add(EventTableAvailability(
        event_id=seed.event_id, table_id=seed.deposit_table_id, is_available=False,
    ))
    await db_session.commit()

    event = await db_session.get(Event, seed.event_id)
    tables = await list_event_tables(db_session, event)
    assert [item.table.id for item in tables] == [seed.table_id]

    pinned = await list_event_tables(db_session, event, table_id=seed.deposit_table_id)
    assert pinned == []
