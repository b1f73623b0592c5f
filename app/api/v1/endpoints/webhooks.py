"""
Inbound email delivery webhooks.

Authenticated with the shared ``WEBHOOK_SECRET`` bearer token and exempt from
CSRF validation.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy import update
from sqlalchemy.orm import Session
from app.api.deps import get_db, require_webhook_secret
from app.models.db import Participant
from app.models.db.enums import EmailStatus
from app.models.schemas.base import ResponseBase
from app.models.schemas.webhooks import EmailEventBatch
from app.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

EVENT_STATUS = {
    "delivered": EmailStatus.DELIVERED,
    "bounced": EmailStatus.BOUNCED,
    "failed": EmailStatus.FAILED,
}


@router.post(
    "/email-events",
    response_model=ResponseBase,
    dependencies=[Depends(require_webhook_secret)],
    summary="Email delivery events",
    description="Record delivery outcomes of assignment emails"
)
def email_events(
    batch: EmailEventBatch,
    request: Request,
    db: Session = Depends(get_db)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    updated = 0
    for event in batch.events:
        # Only participants holding an assignment have an assignment email to track.
        result = db.execute(
            update(Participant)
            .where(Participant.email == event.email.lower(), Participant.recipient_id.is_not(None))
            .values(assignment_email_status=EVENT_STATUS[event.status])
        )
        updated += result.rowcount or 0
    db.commit()

    logger.info("Email events processed", events=len(batch.events), updated=updated, request_id=request_id)
    return ResponseBase(message="Events processed", data={"received": len(batch.events), "updated": updated})
