"""
Pydantic schemas for group management.
"""
from datetime import date
from typing import Optional, List
from pydantic import EmailStr, Field, ConfigDict
from pydantic.alias_generators import to_camel
from .base import CamelModel
from ..db.enums import EmailStatus, AssignmentState, Locale


class GroupCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    event_date: date
    place: str = Field(min_length=1, max_length=300)
    budget: str = Field(min_length=1, max_length=100)
    owner_name: str = Field(min_length=1, max_length=200)
    owner_email: EmailStr

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, json_schema_extra={
        "example": {
            "name": "Office Party",
            "eventDate": "2025-12-20",
            "place": "Main hall",
            "budget": "$25",
            "ownerName": "Alice",
            "ownerEmail": "alice@example.com"
        }
    })


class GroupJoin(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    invite_id: str = Field(min_length=1, max_length=64)


class GroupCreated(CamelModel):
    success: bool = True
    group_id: int
    invite_id: str


class ParticipantRead(CamelModel):
    id: int
    name: str
    email: str
    assignment_email_status: EmailStatus
    assignment_state: AssignmentState

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class AssignmentRead(CamelModel):
    recipient_id: int
    recipient_name: str


class GroupRead(CamelModel):
    id: int
    name: str
    event_date: date
    place: str
    budget: str
    owner_email: str
    invite_id: Optional[str] = None
    is_drawn: bool
    is_owner: bool
    participants: List[ParticipantRead]
    my_assignment: Optional[AssignmentRead] = None


class GroupUpdate(CamelModel):
    group_id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=200)
    event_date: date
    place: str = Field(min_length=1, max_length=300)
    budget: str = Field(min_length=1, max_length=100)


class RemoveParticipant(CamelModel):
    group_id: int = Field(gt=0)
    participant_id: int = Field(gt=0)


class SendInvitation(CamelModel):
    group_id: int = Field(gt=0)
    recipient_email: EmailStr
    locale: Optional[Locale] = None
