"""
DOKU Checkout client.

Requests are authenticated with an HMAC-SHA256 signature over the client id,
request id, timestamp, request target and a SHA-256 digest of the body.
Webhook notifications are signed the same way.

In demo mode no request leaves the process: a local payment page URL is
returned so the flow can be exercised without gateway credentials.
"""

import base64
import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import httpx

from app.core.config import get_settings
from app.core.exceptions import UpstreamError
from app.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

DOKU_ENDPOINTS = {
    "sandbox": "https://api-sandbox.doku.com",
    "production": "https://api.doku.com",
}

CHECKOUT_PATH = "/checkout/v1/payment"


@dataclass(frozen=True)
class DokuCredentials:
    client_id: str
    secret_key: str
    environment: str = "sandbox"


@dataclass(frozen=True)
class CheckoutSession:
    payment_url: str
    invoice_number: str
    token_id: Optional[str] = None
    expires_at: Optional[str] = None


def generate_digest(body: str) -> str:
    return base64.b64encode(hashlib.sha256(body.encode("utf-8")).digest()).decode("ascii")


def generate_signature(
    client_id: str,
    secret_key: str,
    request_id: str,
    timestamp: str,
    request_target: str,
    digest: str,
) -> str:
    components = "\n".join([
        f"Client-Id:{client_id}",
        f"Request-Id:{request_id}",
        f"Request-Timestamp:{timestamp}",
        f"Request-Target:{request_target}",
        f"Digest:{digest}",
    ])
    mac = hmac.new(secret_key.encode("utf-8"), components.encode("utf-8"), hashlib.sha256)
    return "HMACSHA256=" + base64.b64encode(mac.digest()).decode("ascii")


def verify_webhook_signature(
    signature: str,
    credentials: DokuCredentials,
    request_id: str,
    timestamp: str,
    request_target: str,
    body: str,
) -> bool:
    expected = generate_signature(
        client_id=credentials.client_id,
        secret_key=credentials.secret_key,
        request_id=request_id,
        timestamp=timestamp,
        request_target=request_target,
        digest=generate_digest(body),
    )
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class DokuClient:
    def __init__(
        self,
        credentials: DokuCredentials,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        demo_mode: Optional[bool] = None,
    ):
        self.credentials = credentials
        self.base_url = DOKU_ENDPOINTS.get(credentials.environment, DOKU_ENDPOINTS["sandbox"])
        self.transport = transport
        self.demo_mode = settings.DOKU_DEMO_MODE if demo_mode is None else demo_mode

    def _demo_session(
        self, amount: int, invoice_number: str, payment_due_minutes: int, callback_url: Optional[str]
    ) -> CheckoutSession:
        query = urlencode({
            "invoice": invoice_number,
            "amount": amount,
            "callback": callback_url or "",
        })
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=payment_due_minutes)
        logger.info("doku_demo_checkout", invoice_number=invoice_number, amount=amount)
        return CheckoutSession(
            payment_url=f"{settings.APP_BASE_URL}/demo/payment?{query}",
            invoice_number=invoice_number,
            token_id=f"demo-token-{uuid.uuid4().hex[:12]}",
            expires_at=expires_at.isoformat(),
        )

    async def _post(self, path: str, payload: dict) -> dict:
        body = json.dumps(payload, separators=(",", ":"))
        request_id = str(uuid.uuid4())
        timestamp = _timestamp()
        headers = {
            "Content-Type": "application/json",
            "Client-Id": self.credentials.client_id,
            "Request-Id": request_id,
            "Request-Timestamp": timestamp,
            "Signature": generate_signature(
                client_id=self.credentials.client_id,
                secret_key=self.credentials.secret_key,
                request_id=request_id,
                timestamp=timestamp,
                request_target=path,
                digest=generate_digest(body),
            ),
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                transport=self.transport,
                timeout=settings.DOKU_TIMEOUT_SECONDS,
            ) as client:
                response = await client.post(path, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError("doku", f"request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        if response.is_error:
            message = None
            if isinstance(data, dict):
                error = data.get("error")
                if isinstance(error, dict):
                    message = error.get("message")
                if not message and isinstance(data.get("message"), list) and data["message"]:
                    message = data["message"][0]
            raise UpstreamError("doku", message or f"DOKU API error: {response.status_code}")

        return data

    async def create_checkout(
        self,
        amount: int,
        invoice_number: str,
        customer: dict,
        payment_due_minutes: int,
        callback_url: Optional[str] = None,
        callback_url_cancel: Optional[str] = None,
        line_items: Optional[list[dict]] = None,
    ) -> CheckoutSession:
        """Open a hosted checkout session. Raises UpstreamError on any gateway failure."""
        if self.demo_mode:
            return self._demo_session(amount, invoice_number, payment_due_minutes, callback_url)

        order = {"amount": amount, "invoice_number": invoice_number}
        if callback_url:
            order["callback_url"] = callback_url
        if callback_url_cancel:
            order["callback_url_cancel"] = callback_url_cancel
        if line_items:
            order["line_items"] = line_items

        payload = {
            "order": order,
            "payment": {"payment_due_date": payment_due_minutes},
            "customer": {key: value for key, value in customer.items() if value},
        }

        data = await self._post(CHECKOUT_PATH, payload)
        try:
            payment = data["response"]["payment"]
            return CheckoutSession(
                payment_url=payment["url"],
                invoice_number=data["response"]["order"]["invoice_number"],
                token_id=payment.get("token_id"),
                expires_at=payment.get("expired_date"),
            )
        except (KeyError, TypeError) as e:
            raise UpstreamError("doku", "unexpected checkout response") from e
