"""Group draw lifecycle: run, void and resend assignment notifications.

Double-draw protection is layered:
  1. the ``is_drawn`` flag is checked up front for a friendly error;
  2. the flag is claimed with a conditional UPDATE (``is_drawn = false`` ->
     ``true``) in the same transaction that writes the assignments, so only
     one of two concurrent draws can commit;
  3. ``/lottery/run`` is rate limited per group id.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from sqlalchemy import update
from sqlalchemy.orm import Session
from app.models.db import Group, Participant
from app.models.db.enums import EmailStatus, Locale
from app.services.lottery import (
    InsufficientParticipantsError,
    LotteryEngine,
    LotteryParticipant,
)
from app.services.notifications import assignment_email, send_email
from app.utils import get_logger, log_business_event
from app.utils.time import utc_now

logger = get_logger(__name__)


class DrawError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GroupNotFoundError(DrawError):
    status_code = 404


class NotGroupOwnerError(DrawError):
    status_code = 403


class ParticipantNotFoundError(DrawError):
    status_code = 404


class AssignmentEmailFailedError(DrawError):
    status_code = 502


@dataclass
class DrawOutcome:
    participants_count: int
    emails_failed: int = 0


def _owned_group(db: Session, group_id: int, actor: Participant, action: str) -> Group:
    group = db.get(Group, group_id)
    if group is None:
        raise GroupNotFoundError("Group not found")
    if actor.group_id != group.id or actor.email != group.owner_email:
        raise NotGroupOwnerError(f"Only the group owner can {action}")
    return group


async def _notify(giver: Participant, recipient: Participant, group: Group, locale: Locale) -> bool:
    message = assignment_email(
        to=giver.email,
        participant_name=giver.name,
        recipient_name=recipient.name,
        group_name=group.name,
        event_date=group.event_date,
        place=group.place,
        budget=group.budget,
        locale=locale,
    )
    try:
        await send_email(message)
        return True
    except Exception as e:
        logger.error(
            "Failed to send assignment email",
            participant_id=giver.id,
            group_id=group.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False


async def run_group_lottery(
    db: Session,
    group_id: int,
    actor: Participant,
    locale: Locale = Locale.EN,
    engine: Optional[LotteryEngine] = None,
    request_id: Optional[str] = None,
) -> DrawOutcome:
    group = _owned_group(db, group_id, actor, "run the lottery")
    if group.is_drawn:
        raise DrawError("Lottery has already been run for this group")

    participants = list(group.participants)
    engine = engine or LotteryEngine()
    if len(participants) < engine.min_participants:
        raise DrawError(f"At least {engine.min_participants} participants are required to run the lottery")

    now = utc_now()
    claimed = db.execute(
        update(Group)
        .where(Group.id == group.id, Group.is_drawn == False)  # noqa: E712
        .values(is_drawn=True, drawn_at=now)
    )
    if claimed.rowcount != 1:
        db.rollback()
        logger.warning("Concurrent draw lost the claim", group_id=group.id, request_id=request_id)
        raise DrawError("Lottery has already been run for this group")

    try:
        assignments = engine.draw([LotteryParticipant(id=str(p.id), name=p.name) for p in participants])
    except InsufficientParticipantsError as e:
        db.rollback()
        raise DrawError(str(e))
    except Exception:
        db.rollback()
        raise

    by_id = {str(p.id): p for p in participants}
    for giver_id, recipient_id in assignments.items():
        giver = by_id[giver_id]
        giver.recipient_id = by_id[recipient_id].id
        giver.assignment_email_status = EmailStatus.SENT
        giver.assignment_email_sent_at = now
    db.commit()

    log_business_event(
        "lottery_drawn",
        {"group_id": group.id, "participants_count": len(participants)},
        participant_id=actor.id,
        request_id=request_id,
    )

    failed = 0
    for giver_id, recipient_id in assignments.items():
        giver = by_id[giver_id]
        if not await _notify(giver, by_id[recipient_id], group, locale):
            giver.assignment_email_status = EmailStatus.FAILED
            failed += 1
    if failed:
        db.commit()
        logger.warning("Some assignment emails failed", group_id=group.id, failed=failed, request_id=request_id)

    return DrawOutcome(participants_count=len(participants), emails_failed=failed)


def void_group_lottery(db: Session, group_id: int, actor: Participant, request_id: Optional[str] = None) -> None:
    group = _owned_group(db, group_id, actor, "void the lottery")
    if not group.is_drawn:
        raise DrawError("No lottery to void - lottery has not been run yet")

    db.execute(
        update(Participant)
        .where(Participant.group_id == group.id)
        .values(recipient_id=None, assignment_email_status=EmailStatus.PENDING, assignment_email_sent_at=None)
    )
    group.is_drawn = False
    group.drawn_at = None
    db.commit()
    db.expire_all()

    log_business_event("lottery_voided", {"group_id": group.id}, participant_id=actor.id, request_id=request_id)


async def resend_assignment(
    db: Session,
    group_id: int,
    participant_id: int,
    actor: Participant,
    locale: Locale = Locale.EN,
    request_id: Optional[str] = None,
) -> None:
    group = _owned_group(db, group_id, actor, "resend assignment emails")
    if not group.is_drawn:
        raise DrawError("Lottery has not been run yet for this group")

    participant = db.get(Participant, participant_id)
    if participant is None or participant.group_id != group.id:
        raise ParticipantNotFoundError("Participant not found in this group")
    if participant.recipient is None:
        raise DrawError("Participant does not have an assignment")

    if await _notify(participant, participant.recipient, group, locale):
        participant.assignment_email_status = EmailStatus.SENT
        participant.assignment_email_sent_at = utc_now()
        db.commit()
        log_business_event(
            "assignment_resent",
            {"group_id": group.id, "target_participant_id": participant.id},
            participant_id=actor.id,
            request_id=request_id,
        )
        return

    participant.assignment_email_status = EmailStatus.FAILED
    db.commit()
    raise AssignmentEmailFailedError("Failed to send assignment email")


__all__ = [
    "DrawError",
    "GroupNotFoundError",
    "NotGroupOwnerError",
    "ParticipantNotFoundError",
    "AssignmentEmailFailedError",
    "DrawOutcome",
    "run_group_lottery",
    "void_group_lottery",
    "resend_assignment",
]
