"""Email verification codes used for passwordless sign in."""
from __future__ import annotations
import math
import secrets
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session
from app.config import VERIFICATION_SETTINGS
from app.models.db import Participant
from app.models.db.enums import Locale
from app.services.notifications import send_email, verification_email
from app.utils import get_logger
from app.utils.time import utc_now, as_utc

logger = get_logger(__name__)


def generate_verification_code(length: Optional[int] = None) -> str:
    """Uniform numeric code, zero padded (e.g. ``"004217"``)."""
    digits = int(length or VERIFICATION_SETTINGS["code_length"])
    return str(secrets.randbelow(10 ** digits)).zfill(digits)


def code_expiration(now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) + timedelta(minutes=VERIFICATION_SETTINGS["code_ttl_minutes"])


def is_code_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return True
    return (now or utc_now()) >= as_utc(expires_at)  # type: ignore[operator]


def remaining_cooldown(last_sent_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole seconds until another code may be sent; 0 when allowed now."""
    if last_sent_at is None:
        return 0
    elapsed = ((now or utc_now()) - as_utc(last_sent_at)).total_seconds()  # type: ignore[operator]
    remaining = VERIFICATION_SETTINGS["resend_cooldown_seconds"] - elapsed
    return max(0, math.ceil(remaining))


def can_resend_code(last_sent_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return remaining_cooldown(last_sent_at, now) == 0


async def issue_verification_code(db: Session, participant: Participant, locale: Locale = Locale.EN) -> bool:
    """Store a fresh code on the participant and email it.

    The code is committed before sending so a delivery failure still leaves a
    valid code that a later resend replaces. Returns whether the email went out.
    """
    now = utc_now()
    code = generate_verification_code()
    participant.verification_code = code
    participant.code_expires_at = code_expiration(now)
    participant.code_sent_at = now
    db.commit()

    try:
        await send_email(verification_email(participant.email, participant.name, code, locale))
    except Exception as e:
        logger.error(
            "Failed to send verification email",
            participant_id=participant.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
    return True


__all__ = [
    "issue_verification_code",
    "generate_verification_code",
    "code_expiration",
    "is_code_expired",
    "remaining_cooldown",
    "can_resend_code",
]
