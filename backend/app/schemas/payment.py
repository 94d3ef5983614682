"""
Pydantic schemas for the payment gateway webhook.
"""

from typing import Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    success: bool = True
    message: str
    transaction_id: Optional[str] = None
