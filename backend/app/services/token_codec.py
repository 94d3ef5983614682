"""
QR pass tokens: signed, time-bound credentials binding a registration to
an event and attendee. Scanned at the door and verified by the check-in
service.
"""

from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError as PayloadError

from app.core.config import get_settings
from app.core.exceptions import InvalidTokenError
from app.schemas.checkin import PassTokenPayload

settings = get_settings()


def mint_pass_token(registration_id: str, event_id: str, attendee_id: str) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "registration_id": registration_id,
        "event_id": event_id,
        "attendee_id": attendee_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.QR_TOKEN_EXPIRE_DAYS)).timestamp()),
    }
    return jwt.encode(claims, settings.QR_JWT_SECRET, algorithm=settings.ALGORITHM)


def verify_pass_token(token: str) -> PassTokenPayload:
    """
    Decode and verify a pass token.

    Raises InvalidTokenError with a reason suitable for "Invalid QR code: ..."
    when the signature, expiry or claims are wrong.
    """
    try:
        claims = jwt.decode(token, settings.QR_JWT_SECRET, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise InvalidTokenError("Token has expired")
    except JWTError:
        raise InvalidTokenError("Invalid token signature")

    try:
        return PassTokenPayload.model_validate(claims)
    except PayloadError:
        raise InvalidTokenError("Malformed token payload")
