"""
Payment session bridge between table bookings and the DOKU gateway.

A checkout session is opened only when the venue has DOKU enabled with
credentials. Any gateway failure degrades to "no payment link": the booking
stays valid and can be paid later.

Webhook reconciliation:
  - FAILED notifications are ignored; expiry is tracked locally
  - PENDING marks the transaction as processing
  - SUCCESS completes the transaction once, marks the booking paid,
    auto-confirms it when the venue allows, then materializes the party
    and sends the confirmation email as post-commit effects
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import UpstreamError, ValidationError
from app.core.logging import get_logger
from app.core.metrics import record_payment_session
from app.db.base import utcnow
from app.infrastructure import email_client
from app.infrastructure.doku_client import DokuClient, DokuCredentials, verify_webhook_signature
from app.models.booking import PaymentTransaction, TableBooking
from app.models.event import Event
from app.models.party import TablePartyGuest
from app.models.venue import VenuePaymentSettings
from app.schemas.booking import PaymentInfo
from app.schemas.payment import WebhookAck
from app.services.booking_context import load_booking_context
from app.services.effects import PostCommitEffects
from app.services.formatting import (
    booking_url,
    currency_symbol,
    format_event_date,
    format_event_time,
    pass_url,
)
from app.services.party_service import materialize_party

logger = get_logger(__name__)
settings = get_settings()

WEBHOOK_PATH = "/api/v1/webhooks/doku"


def generate_booking_invoice_number(booking_id: str) -> str:
    # Card payments cap invoice numbers at 30 characters.
    return "CS-" + booking_id.replace("-", "")[:20]


def format_amount(amount) -> int:
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_doku_client(credentials: DokuCredentials) -> DokuClient:
    return DokuClient(credentials)


async def get_payment_settings(db: AsyncSession, venue_id: Optional[str]) -> Optional[VenuePaymentSettings]:
    if not venue_id:
        return None
    result = await db.execute(
        select(VenuePaymentSettings).where(VenuePaymentSettings.venue_id == venue_id)
    )
    return result.scalar_one_or_none()


def doku_credentials(payment_settings: Optional[VenuePaymentSettings]) -> Optional[DokuCredentials]:
    """Credentials when DOKU is enabled and fully configured, else None."""
    if not payment_settings or not payment_settings.doku_enabled:
        return None
    if not payment_settings.doku_client_id or not payment_settings.doku_secret_key:
        return None
    return DokuCredentials(
        client_id=payment_settings.doku_client_id,
        secret_key=payment_settings.doku_secret_key,
        environment=payment_settings.doku_environment or "sandbox",
    )


async def create_checkout_session(
    db: AsyncSession,
    venue_id: Optional[str],
    booking_id: str,
    amount: Decimal,
    currency: str,
    customer_name: str,
    customer_email: str,
    customer_phone: Optional[str],
    description: str,
) -> Optional[PaymentInfo]:
    """
    Open a checkout session for a booking deposit and record the transaction.
    Returns None when the venue has no usable gateway or the gateway fails.
    """
    payment_settings = await get_payment_settings(db, venue_id)
    credentials = doku_credentials(payment_settings)
    if credentials is None:
        record_payment_session("skipped")
        logger.info("payment_session_skipped", booking_id=booking_id, venue_id=venue_id)
        return None

    expiry_hours = payment_settings.payment_expiry_hours or settings.DEFAULT_PAYMENT_EXPIRY_HOURS
    invoice_number = generate_booking_invoice_number(booking_id)
    doku_amount = format_amount(amount)
    expires_at = utcnow() + timedelta(hours=expiry_hours)

    client = build_doku_client(credentials)
    try:
        session = await client.create_checkout(
            amount=doku_amount,
            invoice_number=invoice_number,
            customer={"name": customer_name, "email": customer_email, "phone": customer_phone},
            payment_due_minutes=expiry_hours * 60,
            callback_url=f"{booking_url(booking_id)}/payment-complete",
            callback_url_cancel=f"{booking_url(booking_id)}/payment-cancelled",
            line_items=[{"name": description, "price": doku_amount, "quantity": 1}],
        )
    except UpstreamError as e:
        record_payment_session("failed")
        logger.warning(
            "payment_session_failed",
            booking_id=booking_id,
            invoice_number=invoice_number,
            error=e.message,
        )
        return None

    transaction = PaymentTransaction(
        venue_id=venue_id,
        reference_type="table_booking",
        reference_id=booking_id,
        amount=amount,
        currency=currency,
        doku_invoice_id=invoice_number,
        doku_payment_url=session.payment_url,
        status="pending",
        expires_at=expires_at,
    )
    db.add(transaction)
    await db.flush()

    await db.execute(
        update(TableBooking)
        .where(TableBooking.id == booking_id)
        .values(payment_transaction_id=transaction.id, payment_status="pending")
    )

    record_payment_session("created")
    logger.info(
        "payment_session_created",
        booking_id=booking_id,
        transaction_id=transaction.id,
        invoice_number=invoice_number,
        amount=doku_amount,
    )
    return PaymentInfo(
        payment_url=session.payment_url,
        expires_at=expires_at,
        invoice_number=invoice_number,
        doku_enabled=True,
    )


def _parse_paid_at(value) -> datetime:
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return utcnow()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utcnow()


def _parse_webhook(raw_body: str) -> dict:
    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Invalid payload")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")
    return payload


def _check_signature(
    payment_settings: Optional[VenuePaymentSettings],
    headers: Mapping[str, str],
    raw_body: str,
    invoice_number: str,
) -> None:
    """Verify the notification signature when possible; a mismatch is only logged."""
    if not payment_settings or not payment_settings.doku_client_id or not payment_settings.doku_secret_key:
        return

    signature = headers.get("signature", "")
    request_id = headers.get("request-id", "")
    timestamp = headers.get("request-timestamp", "")
    if not (signature and request_id and timestamp):
        return

    credentials = DokuCredentials(
        client_id=payment_settings.doku_client_id,
        secret_key=payment_settings.doku_secret_key,
        environment=payment_settings.doku_environment or "sandbox",
    )
    if not verify_webhook_signature(signature, credentials, request_id, timestamp, WEBHOOK_PATH, raw_body):
        logger.warning("doku_webhook_signature_invalid", invoice_number=invoice_number)


async def process_doku_webhook(
    db: AsyncSession,
    raw_body: str,
    headers: Mapping[str, str],
) -> WebhookAck:
    payload = _parse_webhook(raw_body)
    order = payload.get("order") if isinstance(payload.get("order"), dict) else {}
    invoice_number = order.get("invoice_number")
    if not invoice_number:
        raise ValidationError("Missing invoice number")

    transaction_data = payload.get("transaction") if isinstance(payload.get("transaction"), dict) else {}
    doku_status = transaction_data.get("status")
    logger.info("doku_webhook_received", invoice_number=invoice_number, doku_status=doku_status)

    result = await db.execute(
        select(PaymentTransaction).where(PaymentTransaction.doku_invoice_id == invoice_number)
    )
    transaction = result.scalar_one_or_none()
    if not transaction:
        # Acknowledge so the gateway stops retrying test or foreign notifications
        logger.warning("doku_webhook_transaction_not_found", invoice_number=invoice_number)
        return WebhookAck(message="Transaction not found")

    payment_settings = await get_payment_settings(db, transaction.venue_id)
    _check_signature(payment_settings, headers, raw_body, invoice_number)

    if doku_status == "FAILED":
        logger.info("doku_webhook_failed_ignored", invoice_number=invoice_number)
        return WebhookAck(message="FAILED status ignored", transaction_id=transaction.id)

    if transaction.status == "completed":
        logger.info("doku_webhook_already_processed", invoice_number=invoice_number)
        return WebhookAck(message="Already processed", transaction_id=transaction.id)

    transaction.webhook_received_at = utcnow()
    transaction.webhook_payload = payload
    channel = payload.get("channel")
    if isinstance(channel, dict) and channel.get("id"):
        transaction.payment_method = channel["id"]

    transaction_id = transaction.id
    if doku_status == "PENDING":
        transaction.status = "processing"
        await db.commit()
        logger.info("payment_processing", invoice_number=invoice_number, transaction_id=transaction_id)
        return WebhookAck(message="Payment pending", transaction_id=transaction_id)

    if doku_status != "SUCCESS":
        await db.commit()
        logger.info("doku_webhook_unhandled_status", invoice_number=invoice_number, doku_status=doku_status)
        return WebhookAck(message="Webhook recorded", transaction_id=transaction_id)

    transaction.status = "completed"
    transaction.paid_at = _parse_paid_at(transaction_data.get("date"))

    booking_id = None
    if transaction.reference_type == "table_booking":
        auto_confirm = payment_settings.auto_confirm_on_payment if payment_settings else True
        booking_id = await _mark_booking_paid(db, transaction.reference_id, auto_confirm)

    await db.commit()
    logger.info("payment_completed", invoice_number=invoice_number, transaction_id=transaction_id, booking_id=booking_id)

    if booking_id:
        effects = PostCommitEffects(db, "payment_completed")
        effects.add("party_materialize", lambda: _materialize_for_booking(db, booking_id))
        effects.add("confirmation_email", lambda: send_booking_confirmed_email(db, booking_id))
        await effects.run()

    return WebhookAck(message="Payment completed", transaction_id=transaction_id)


async def _mark_booking_paid(db: AsyncSession, booking_id: str, auto_confirm: bool) -> Optional[str]:
    result = await db.execute(select(TableBooking).where(TableBooking.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        logger.error("payment_booking_not_found", booking_id=booking_id)
        return None

    now = utcnow()
    booking.payment_status = "paid"
    booking.deposit_received = True
    booking.deposit_received_at = now
    if auto_confirm and booking.status == "pending":
        booking.status = "confirmed"
        booking.confirmed_at = now
        logger.info("booking_auto_confirmed", booking_id=booking_id)
    return booking.id


async def _materialize_for_booking(db: AsyncSession, booking_id: str) -> None:
    result = await db.execute(select(TableBooking).where(TableBooking.id == booking_id))
    booking = result.scalar_one()
    await materialize_party(db, booking)


async def send_booking_confirmed_email(db: AsyncSession, booking_id: str) -> bool:
    result = await db.execute(select(TableBooking).where(TableBooking.id == booking_id))
    booking = result.scalar_one()
    event = await db.get(Event, booking.event_id)
    context = await load_booking_context(db, event, booking.table_id)

    host_result = await db.execute(
        select(TablePartyGuest.id).where(
            TablePartyGuest.booking_id == booking_id,
            TablePartyGuest.is_host.is_(True),
        ).limit(1)
    )
    host_id = host_result.scalar_one_or_none()

    return await email_client.send_template_email(
        "table_booking_confirmed",
        booking.guest_email,
        booking.attendee_id,
        {
            "guest_name": booking.guest_name,
            "event_name": context.event_name,
            "event_date": format_event_date(context.start_time, context.timezone),
            "event_time": format_event_time(context.start_time, context.timezone),
            "venue_name": context.venue_name,
            "table_name": context.table_name,
            "zone_name": context.zone_name or "General",
            "party_size": str(booking.party_size),
            "minimum_spend": str(format_amount(booking.minimum_spend or 0)),
            "currency_symbol": currency_symbol(context.currency),
            "confirmation_number": booking_id.split("-")[0].upper(),
            "pass_url": pass_url(host_id) if host_id else booking_url(booking_id),
            "booking_url": booking_url(booking_id),
        },
        {"event_id": context.event_id, "booking_id": booking_id},
    )
