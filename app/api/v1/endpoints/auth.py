"""
Passwordless sign in: email verification codes and sign out.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from sqlalchemy.orm import Session
import time
from app.api.deps import get_db, get_web_session, get_optional_session, governed, GovernedRoute
from app.models.db import Participant, WebSession
from app.models.schemas.auth import VerifyRequest, ResendCodeRequest, VerifyResponse
from app.models.schemas.base import ResponseBase
from app.services import sessions as session_service
from app.services.notifications import resolve_locale
from app.services.verification import is_code_expired, issue_verification_code, remaining_cooldown
from app.utils import get_logger, log_business_event, log_performance

router = APIRouter(route_class=GovernedRoute)
logger = get_logger(__name__)


@router.post(
    "/verify",
    response_model=VerifyResponse,
    dependencies=[Depends(governed("verify_ip", "verify_email"))],
    summary="Verify email code",
    description="Exchange an emailed verification code for a signed-in session"
)
def verify_code(
    payload: VerifyRequest,
    request: Request,
    response: Response,
    web_session: WebSession = Depends(get_web_session),
    db: Session = Depends(get_db)
) -> VerifyResponse:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    email = payload.email.lower()

    participant = db.query(Participant).filter(
        Participant.email == email,
        Participant.verification_code == payload.code.strip()
    ).first()

    if not participant:
        logger.warning("Verification failed: invalid code", request_id=request_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")

    if is_code_expired(participant.code_expires_at):
        logger.warning("Verification failed: expired code", participant_id=participant.id, request_id=request_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Verification code has expired")

    participant.verification_code = None
    participant.code_expires_at = None
    db.commit()

    signed_in = session_service.login(db, web_session, participant.id)
    session_service.set_session_cookie(response, signed_in.id)

    log_business_event(
        "participant_verified",
        {"group_id": participant.group_id},
        participant_id=participant.id,
        request_id=request_id
    )
    log_performance("verify_code", (time.time() - start_time) * 1000, {"request_id": request_id})

    return VerifyResponse(participant_id=participant.id, group_id=participant.group_id)


@router.post(
    "/resend-code",
    response_model=ResponseBase,
    dependencies=[Depends(governed("resend_code_ip"))],
    summary="Resend verification code"
)
async def resend_code(
    payload: ResendCodeRequest,
    request: Request,
    db: Session = Depends(get_db)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")

    # The same email can belong to several groups; the newest registration wins.
    participant = db.query(Participant).filter(
        Participant.email == payload.email.lower()
    ).order_by(Participant.id.desc()).first()

    if not participant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not found")

    wait = remaining_cooldown(participant.code_sent_at)
    if wait > 0:
        logger.info("Resend refused during cooldown", participant_id=participant.id, remaining_seconds=wait, request_id=request_id)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Please wait {wait} seconds before requesting a new code",
            headers={"Retry-After": str(wait)},
        )

    locale = resolve_locale(accept_language=request.headers.get("Accept-Language"))
    sent = await issue_verification_code(db, participant, locale)
    if not sent:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to send verification code")

    logger.info("Verification code resent", participant_id=participant.id, request_id=request_id)
    return ResponseBase(message="Verification code sent")


@router.post(
    "/signout",
    response_model=ResponseBase,
    dependencies=[Depends(governed())],
    summary="Sign out",
    description="Destroy the server-side session and clear its cookie"
)
def sign_out(
    request: Request,
    response: Response,
    web_session: WebSession | None = Depends(get_optional_session),
    db: Session = Depends(get_db)
) -> ResponseBase:
    participant_id = web_session.participant_id if web_session is not None else None
    session_service.logout(db, web_session)
    session_service.clear_session_cookie(response)
    log_business_event(
        "participant_signed_out",
        {},
        participant_id=participant_id,
        request_id=request.headers.get("X-Request-ID", "unknown")
    )
    return ResponseBase(message="Signed out")
