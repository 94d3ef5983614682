"""
Payment gateway notifications.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.payment import WebhookAck
from app.services.payment_service import process_doku_webhook

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/doku", response_model=WebhookAck)
async def doku_notification(request: Request, db: AsyncSession = Depends(get_db)):
    # The signature covers the exact bytes sent, so the body is read raw
    raw_body = (await request.body()).decode("utf-8", errors="replace")
    return await process_doku_webhook(db, raw_body, request.headers)
