"""
Activity log, outbox events, XP awards and check-in analytics.

Every function here is called from post-commit effects; none of them commit.
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.metrics import tracked_checkins
from app.models.activity import ActivityLog, OutboxEvent, XpLedger

logger = get_logger(__name__)

AWARD_XP_SQL = text(
    "SELECT award_xp(:p_user_id, :p_amount, :p_source_type, :p_role_context, :p_event_id, :p_description)"
)


async def log_activity(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    details: Optional[dict] = None,
) -> ActivityLog:
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(entry)
    await db.flush()
    return entry


async def emit_outbox_event(db: AsyncSession, event_name: str, payload: dict) -> OutboxEvent:
    event = OutboxEvent(event_name=event_name, payload=payload)
    db.add(event)
    await db.flush()
    logger.info("outbox_event_emitted", event_name=event_name, outbox_id=event.id)
    return event


async def award_xp(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source_type: str,
    role_context: str,
    event_id: Optional[str],
    description: str,
) -> str:
    """
    Award XP through the award_xp database function. When the function is
    missing or fails, fall back to a direct ledger insert.
    Returns the path that succeeded: "rpc" or "ledger".
    """
    params = {
        "p_user_id": user_id,
        "p_amount": amount,
        "p_source_type": source_type,
        "p_role_context": role_context,
        "p_event_id": event_id,
        "p_description": description,
    }
    try:
        await db.execute(AWARD_XP_SQL, params)
        logger.info("xp_awarded", user_id=user_id, amount=amount, via="rpc")
        return "rpc"
    except DBAPIError as e:
        await db.rollback()
        logger.warning("xp_rpc_failed", user_id=user_id, error=str(e.orig))

    db.add(XpLedger(
        user_id=user_id,
        event_id=event_id,
        amount=amount,
        source_type=source_type,
        role_context=role_context,
        description=description,
    ))
    await db.flush()
    logger.info("xp_awarded", user_id=user_id, amount=amount, via="ledger")
    return "ledger"


async def track_checkin(
    event_id: str,
    event_name: str,
    attendee_id: str,
    registration_id: str,
    checked_in_by: str,
    method: str,
) -> None:
    tracked_checkins.labels(method=method).inc()
    logger.info(
        "analytics_checkin",
        event_id=event_id,
        event_name=event_name,
        attendee_id=attendee_id,
        registration_id=registration_id,
        checked_in_by=checked_in_by,
        method=method,
    )
