"""
CSRF token issuance for browser clients.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api.deps import get_db, get_web_session
from app.governance import issue_csrf_token
from app.models.db import WebSession
from app.models.schemas.base import CSRFTokenResponse
from app.services.sessions import persist_session

router = APIRouter()


@router.get(
    "/token",
    response_model=CSRFTokenResponse,
    summary="Get CSRF token",
    description="Return the session's CSRF token, creating the session and token on first use"
)
def get_csrf_token(
    web_session: WebSession = Depends(get_web_session),
    db: Session = Depends(get_db)
) -> CSRFTokenResponse:
    token = issue_csrf_token(web_session, lambda record: persist_session(db, record))
    return CSRFTokenResponse(token=token)
