"""
Lottery endpoints: run, void and resend assignment emails (group owner only).
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
import time
from app.api.deps import get_db, get_current_participant, governed, GovernedRoute
from app.models.db import Participant
from app.models.schemas.base import ResponseBase
from app.models.schemas.lottery import LotteryRun, LotteryVoid, ResendAssignment, LotteryRunResult
from app.services.draws import DrawError, run_group_lottery, void_group_lottery, resend_assignment
from app.services.lottery import LotteryError
from app.services.notifications import resolve_locale
from app.utils import get_logger, log_performance

router = APIRouter(route_class=GovernedRoute)
logger = get_logger(__name__)


def _as_http(error: DrawError, request_id: str, **context) -> HTTPException:
    logger.warning("Lottery request refused", reason=error.message, status_code=error.status_code, request_id=request_id, **context)
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.post(
    "/run",
    response_model=LotteryRunResult,
    dependencies=[Depends(governed("lottery_run_group"))],
    summary="Run lottery",
    description="Draw assignments for a group and email every participant their recipient"
)
async def run_lottery(
    payload: LotteryRun,
    request: Request,
    current: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db)
) -> LotteryRunResult:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    locale = resolve_locale(accept_language=request.headers.get("Accept-Language"))

    try:
        outcome = await run_group_lottery(db, payload.group_id, current, locale=locale, request_id=request_id)
    except DrawError as e:
        raise _as_http(e, request_id, group_id=payload.group_id)
    except LotteryError as e:
        logger.error("Lottery draw failed", group_id=payload.group_id, error=str(e), request_id=request_id)
        raise HTTPException(status_code=500, detail=str(e))

    log_performance(
        "run_lottery",
        (time.time() - start_time) * 1000,
        {"group_id": payload.group_id, "participants_count": outcome.participants_count, "request_id": request_id}
    )
    message = "Lottery completed and emails sent"
    if outcome.emails_failed:
        message = f"Lottery completed; {outcome.emails_failed} assignment email(s) failed"
    return LotteryRunResult(
        message=message,
        participants_count=outcome.participants_count,
        emails_failed=outcome.emails_failed,
    )


@router.post(
    "/void",
    response_model=ResponseBase,
    dependencies=[Depends(governed())],
    summary="Void lottery",
    description="Clear every assignment of a drawn group so the lottery can be run again"
)
def void_lottery(
    payload: LotteryVoid,
    request: Request,
    current: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        void_group_lottery(db, payload.group_id, current, request_id=request_id)
    except DrawError as e:
        raise _as_http(e, request_id, group_id=payload.group_id)
    return ResponseBase(message="Lottery has been voided successfully")


@router.post(
    "/resend-assignment",
    response_model=ResponseBase,
    dependencies=[Depends(governed("resend_assignment_participant"))],
    summary="Resend assignment email"
)
async def resend_assignment_email(
    payload: ResendAssignment,
    request: Request,
    current: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    locale = resolve_locale(
        explicit=payload.locale.value if payload.locale else None,
        accept_language=request.headers.get("Accept-Language")
    )
    try:
        await resend_assignment(db, payload.group_id, payload.participant_id, current, locale=locale, request_id=request_id)
    except DrawError as e:
        raise _as_http(e, request_id, group_id=payload.group_id, target_participant_id=payload.participant_id)
    return ResponseBase(message="Assignment email resent successfully")
