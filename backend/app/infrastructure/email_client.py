"""
Template email sender (Postmark-compatible /email/withTemplate API).

Sending is skipped when no API token is configured. Provider failures are
raised as UpstreamError; callers run sends as post-commit effects.
"""

from typing import Optional

import httpx

from app.core.config import get_settings
from app.core.exceptions import UpstreamError
from app.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


async def send_template_email(
    template: str,
    to_email: str,
    attendee_id: Optional[str],
    variables: dict,
    context: Optional[dict] = None,
) -> bool:
    if not settings.EMAIL_API_TOKEN:
        logger.info("email_skipped", template=template, reason="no_api_token")
        return False

    metadata = {key: str(value) for key, value in (context or {}).items() if value is not None}
    if attendee_id:
        metadata["attendee_id"] = attendee_id

    payload = {
        "From": settings.EMAIL_FROM,
        "To": to_email,
        "TemplateAlias": template,
        "TemplateModel": variables,
        "Metadata": metadata,
    }
    headers = {
        "Accept": "application/json",
        "X-Postmark-Server-Token": settings.EMAIL_API_TOKEN,
    }

    try:
        async with httpx.AsyncClient(
            base_url=settings.EMAIL_API_URL,
            timeout=settings.EMAIL_TIMEOUT_SECONDS,
        ) as client:
            response = await client.post("/email/withTemplate", json=payload, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise UpstreamError("email", f"{template} to {to_email} failed: {e}") from e

    logger.info("email_sent", template=template, attendee_id=attendee_id)
    return True
