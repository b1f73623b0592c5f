"""
Group creation, joining by invite link, the member view of a group and the
owner's roster tools: update, remove participant and send invitation.
"""
import secrets
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
import time
from app.api.deps import get_db, get_current_participant, governed, GovernedRoute
from app.models.db import Group, Invitation, Participant, WebSession
from app.models.schemas.base import ResponseBase
from app.models.schemas.groups import (
    AssignmentRead,
    GroupCreate,
    GroupCreated,
    GroupJoin,
    GroupRead,
    GroupUpdate,
    ParticipantRead,
    RemoveParticipant,
    SendInvitation,
)
from app.services.notifications import EmailDeliveryError, invitation_email, resolve_locale, send_email
from app.services.verification import issue_verification_code
from app.utils import get_logger, log_business_event, log_performance

router = APIRouter(route_class=GovernedRoute)
logger = get_logger(__name__)

INVITE_ID_BYTES = 12


@router.post(
    "",
    response_model=GroupCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(governed("group_create_ip"))],
    summary="Create group",
    description="Create a group with its owner as first participant and email the owner a verification code"
)
async def create_group(
    payload: GroupCreate,
    request: Request,
    db: Session = Depends(get_db)
) -> GroupCreated:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    owner_email = payload.owner_email.lower()

    group = Group(
        name=payload.name,
        budget=payload.budget,
        event_date=payload.event_date,
        place=payload.place,
        owner_email=owner_email,
        invite_id=secrets.token_urlsafe(INVITE_ID_BYTES),
    )
    db.add(group)
    db.flush()
    owner = Participant(group_id=group.id, name=payload.owner_name, email=owner_email)
    db.add(owner)
    db.commit()
    db.refresh(group)

    locale = resolve_locale(accept_language=request.headers.get("Accept-Language"))
    email_sent = await issue_verification_code(db, owner, locale)

    log_business_event(
        "group_created",
        {"group_id": group.id, "email_sent": email_sent},
        participant_id=owner.id,
        request_id=request_id
    )
    log_performance("create_group", (time.time() - start_time) * 1000, {"request_id": request_id})

    return GroupCreated(group_id=group.id, invite_id=group.invite_id)


@router.post(
    "/join",
    response_model=ResponseBase,
    dependencies=[Depends(governed("join_ip"))],
    summary="Join group",
    description="Join a group through its invite id; a verification code is emailed to the new participant"
)
async def join_group(
    payload: GroupJoin,
    request: Request,
    db: Session = Depends(get_db)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    email = payload.email.lower()

    group = db.query(Group).filter(Group.invite_id == payload.invite_id).first()
    if not group:
        logger.warning("Join failed: unknown invite id", request_id=request_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invitation link")

    participant = db.query(Participant).filter(
        Participant.group_id == group.id,
        Participant.email == email
    ).first()

    if participant is None:
        if group.is_drawn:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="The lottery has already been run for this group"
            )
        participant = Participant(group_id=group.id, name=payload.name, email=email)
        db.add(participant)
        db.commit()
        db.refresh(participant)
        log_business_event(
            "participant_joined",
            {"group_id": group.id},
            participant_id=participant.id,
            request_id=request_id
        )
    else:
        logger.info("Join for existing participant; reissuing code", participant_id=participant.id, request_id=request_id)

    locale = resolve_locale(accept_language=request.headers.get("Accept-Language"))
    email_sent = await issue_verification_code(db, participant, locale)

    return ResponseBase(
        message="Verification code sent" if email_sent else "Joined, but the verification email could not be sent",
        data={"participantId": participant.id, "groupId": group.id, "emailSent": email_sent}
    )


@router.get(
    "/{group_id}",
    response_model=GroupRead,
    summary="Get group",
    description="Member view of a group including the caller's own assignment once drawn"
)
def get_group(
    group_id: int,
    current: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db)
) -> GroupRead:
    group = db.get(Group, group_id)
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    if current.group_id != group.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this group")

    is_owner = current.email == group.owner_email
    my_assignment = None
    if current.recipient is not None:
        my_assignment = AssignmentRead(recipient_id=current.recipient.id, recipient_name=current.recipient.name)

    return GroupRead(
        id=group.id,
        name=group.name,
        event_date=group.event_date,
        place=group.place,
        budget=group.budget,
        owner_email=group.owner_email,
        invite_id=group.invite_id if is_owner else None,
        is_drawn=group.is_drawn,
        is_owner=is_owner,
        participants=[ParticipantRead.model_validate(p) for p in group.participants],
        my_assignment=my_assignment,
    )


def _owned_group(db: Session, group_id: int, current: Participant, action: str) -> Group:
    group = db.get(Group, group_id)
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    if current.group_id != group.id or current.email != group.owner_email:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Only the group owner can {action}")
    return group


@router.put(
    "/update",
    response_model=ResponseBase,
    dependencies=[Depends(governed())],
    summary="Update group",
    description="Owner only: change the group's name, date, place and budget"
)
def update_group(
    payload: GroupUpdate,
    request: Request,
    current: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db)
) -> ResponseBase:
    group = _owned_group(db, payload.group_id, current, "update the group")

    group.name = payload.name
    group.event_date = payload.event_date
    group.place = payload.place
    group.budget = payload.budget
    db.commit()

    log_business_event(
        "group_updated",
        {"group_id": group.id},
        participant_id=current.id,
        request_id=request.headers.get("X-Request-ID", "unknown")
    )
    return ResponseBase(message="Group updated successfully")


@router.post(
    "/remove-participant",
    response_model=ResponseBase,
    dependencies=[Depends(governed())],
    summary="Remove participant",
    description="Owner only: drop a participant from the roster before the lottery is drawn"
)
def remove_participant(
    payload: RemoveParticipant,
    request: Request,
    current: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db)
) -> ResponseBase:
    group = _owned_group(db, payload.group_id, current, "remove participants")
    if group.is_drawn:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot remove participants after lottery has been drawn"
        )

    target = db.get(Participant, payload.participant_id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Participant not found")
    if target.group_id != group.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Participant does not belong to this group")
    if target.email == group.owner_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot remove the group owner")

    db.query(WebSession).filter(WebSession.participant_id == target.id).delete(synchronize_session=False)
    db.delete(target)
    db.commit()

    log_business_event(
        "participant_removed",
        {"group_id": group.id, "removed_participant_id": payload.participant_id},
        participant_id=current.id,
        request_id=request.headers.get("X-Request-ID", "unknown")
    )
    return ResponseBase(message="Participant removed successfully")


@router.post(
    "/send-invitation",
    response_model=ResponseBase,
    dependencies=[Depends(governed("send_invitation_participant"))],
    summary="Send invitation",
    description="Owner only: email the invite link to an address, at most once per address"
)
async def send_invitation(
    payload: SendInvitation,
    request: Request,
    current: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    group = _owned_group(db, payload.group_id, current, "send invitations")
    email = payload.recipient_email.lower()

    already_sent = db.query(Invitation).filter(
        Invitation.group_id == group.id,
        Invitation.email == email
    ).first()
    if already_sent:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invitation already sent to this email")

    locale = resolve_locale(payload.locale.value if payload.locale else None, request.headers.get("Accept-Language"))
    message = invitation_email(
        to=email,
        group_name=group.name,
        invite_id=group.invite_id,
        event_date=group.event_date,
        place=group.place,
        budget=group.budget,
        locale=locale,
    )
    try:
        await send_email(message)
    except EmailDeliveryError as e:
        logger.error("Invitation email failed", group_id=group.id, error=str(e), request_id=request_id)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to send invitation")

    db.add(Invitation(group_id=group.id, email=email))
    db.commit()

    log_business_event("invitation_sent", {"group_id": group.id}, participant_id=current.id, request_id=request_id)
    return ResponseBase(message="Invitation sent successfully")
