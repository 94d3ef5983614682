"""
Display helpers for email template variables and public links.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import get_settings
from app.db.base import as_aware

settings = get_settings()

CURRENCY_SYMBOLS = {
    "IDR": "Rp",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "SGD": "S$",
    "AUD": "A$",
    "THB": "฿",
}


def currency_symbol(currency: Optional[str]) -> str:
    code = (currency or settings.DEFAULT_CURRENCY).upper()
    return CURRENCY_SYMBOLS.get(code, code)


def _localize(start_time: datetime, tz_name: Optional[str]) -> datetime:
    try:
        zone = ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        zone = ZoneInfo("UTC")
    return as_aware(start_time).astimezone(zone)


def format_event_date(start_time: Optional[datetime], tz_name: Optional[str]) -> str:
    if start_time is None:
        return "TBA"
    local = _localize(start_time, tz_name)
    return f"{local:%A, %B} {local.day}, {local.year}"


def format_event_time(start_time: Optional[datetime], tz_name: Optional[str]) -> str:
    if start_time is None:
        return "TBA"
    local = _localize(start_time, tz_name)
    return f"{local.hour % 12 or 12}:{local:%M %p}"


def booking_url(booking_id: str) -> str:
    return f"{settings.APP_BASE_URL}/booking/{booking_id}"


def pass_url(guest_id: str) -> str:
    return f"{settings.APP_BASE_URL}/table-pass/{guest_id}"


def invite_url(invite_token: str) -> str:
    return f"{settings.APP_BASE_URL}/join-table/{invite_token}"
