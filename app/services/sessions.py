"""Server-side browser sessions.

The cookie holds only an opaque random id. The participant binding and the
CSRF token live in the ``web_sessions`` table.
"""
from __future__ import annotations
import secrets
from datetime import timedelta
from typing import Optional
from fastapi import Response
from sqlalchemy.orm import Session
from app.config import CSRF_SETTINGS, SESSION_SETTINGS
from app.models.db import WebSession
from app.utils import get_logger
from app.utils.time import utc_now, as_utc

logger = get_logger(__name__)


def load_session(db: Session, session_id: Optional[str]) -> Optional[WebSession]:
    """Return the live session for ``session_id``; expired rows are deleted."""
    if not session_id:
        return None
    record = db.get(WebSession, session_id)
    if record is None:
        return None
    if as_utc(record.expires_at) <= utc_now():  # type: ignore[operator]
        db.delete(record)
        db.commit()
        logger.info("Expired session discarded")
        return None
    return record


def create_session(db: Session) -> WebSession:
    max_age = int(SESSION_SETTINGS["max_age_seconds"])  # type: ignore[arg-type]
    record = WebSession(id=secrets.token_urlsafe(32), expires_at=utc_now() + timedelta(seconds=max_age))
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def persist_session(db: Session, record: WebSession) -> None:
    db.add(record)
    db.commit()


def login(db: Session, record: WebSession, participant_id: int) -> WebSession:
    """Sign in under a fresh session id; the pre-login row is discarded.

    The CSRF token carries over unless rotation is ``per_login``.
    """
    max_age = int(SESSION_SETTINGS["max_age_seconds"])  # type: ignore[arg-type]
    fresh = WebSession(
        id=secrets.token_urlsafe(32),
        participant_id=participant_id,
        csrf_token=None if CSRF_SETTINGS["rotation"] == "per_login" else record.csrf_token,
        expires_at=utc_now() + timedelta(seconds=max_age),
    )
    db.delete(record)
    db.add(fresh)
    db.commit()
    db.refresh(fresh)
    logger.info("Session id reissued on sign in", participant_id=participant_id)
    return fresh


def logout(db: Session, record: Optional[WebSession]) -> None:
    if record is None:
        return
    db.delete(record)
    db.commit()


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=str(SESSION_SETTINGS["cookie_name"]),
        value=session_id,
        max_age=int(SESSION_SETTINGS["max_age_seconds"]),  # type: ignore[arg-type]
        httponly=True,
        secure=bool(SESSION_SETTINGS["secure"]),
        samesite=str(SESSION_SETTINGS["same_site"]),  # type: ignore[arg-type]
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=str(SESSION_SETTINGS["cookie_name"]), path="/")


__all__ = [
    "load_session",
    "create_session",
    "persist_session",
    "login",
    "logout",
    "set_session_cookie",
    "clear_session_cookie",
]
