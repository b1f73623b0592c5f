"""
Pydantic schemas for inbound email delivery webhooks.
"""
from typing import List, Literal
from pydantic import BaseModel, EmailStr, Field


class EmailEvent(BaseModel):
    email: EmailStr
    status: Literal["delivered", "bounced", "failed"]
    message_id: str | None = None


class EmailEventBatch(BaseModel):
    events: List[EmailEvent] = Field(min_length=1, max_length=500)
